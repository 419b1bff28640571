"""
Cluster lifecycle modules: SSH transport, kubeadm runtime and the
Clusterfile service layer.
"""
