"""Command line tool for kube-datastore."""
