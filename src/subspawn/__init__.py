"""subspawn — orchestrate autonomous-agent subprocesses over JSONL."""

__version__ = "0.1.0"
