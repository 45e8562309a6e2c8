"""
Monitoring Module
Dashboard, alarm topic, metric alarms and cost budget
"""

from .functions import (
    dashboard_body,
    create_dashboard_resources,
    create_alarm_topic,
    create_metric_alarms,
    create_cost_budget,
    create_alarm_resources
)

__all__ = [
    "dashboard_body",
    "create_dashboard_resources",
    "create_alarm_topic",
    "create_metric_alarms",
    "create_cost_budget",
    "create_alarm_resources"
]
