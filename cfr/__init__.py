"""Compose Fleet Reconciler (CFR).

Single-host daemon for a small fleet of docker compose projects:
 - discovery of compose definitions under watched paths
 - dry-run based drift detection and apply
 - per-unit lifecycle tracking, queryable over a local socket
 - nginx configuration derived from the labels of running containers

Not an orchestrator: it only decides when to invoke docker compose and nginx,
and what to feed them.
"""
