"""Video module: upload, processing worker, streaming and progress feed."""
