"""Network Port Reconciler (NPR).

Keeps an up-to-date list of network-attached boards on the local network:
 - discovery of devices advertising a DNS-SD service over mDNS
 - merge of fresh announcements into the previously known set
 - pruning of known devices that stop answering a reachability probe

One discovery cycle runs at a time; callers only ever see complete results.
"""
