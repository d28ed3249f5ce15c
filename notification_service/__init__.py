"""Notification worker: templated emails and PDF academic reports from a job queue."""
