"""Entry point for `python -m kube_datastore`."""

from kube_datastore.tool.kube_datastore import main

if __name__ == "__main__":
    main()
