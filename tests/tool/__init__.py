"""Tests for the kube-datastore command line tool."""
