"""
Store watcher for scorewatch.
Audits every mutation of the score bucket, including writes from other processes.
"""
