"""Kernel services: sequence counters and the job activity trail."""
