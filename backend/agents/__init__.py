"""
Treasury Agent
Policy evaluation pipeline: drift detection, unified triggers, the per-user
evaluation loop, the cron sweep and webhook ingest.
"""
