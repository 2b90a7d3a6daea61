# kubesignal/__init__.py
"""
kubesignal - Kubernetes event and CronJob heartbeat agent.

Watches cluster events, enriches warnings with ownership context and
forwards them as alerts; derives start/ok/error check-ins for every
CronJob run from Job lifecycle transitions.
"""

__version__ = "1.0.0"
