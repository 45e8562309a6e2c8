"""
Monitoring Module Functions
CloudWatch dashboard for the cluster and application, and the alarm topic with
its CPU, memory, error rate and monthly cost alarms

Node metrics are published by the amazon-cloudwatch-observability add-on the
node group installs; application metrics by the iAgent services themselves.
"""

import json
import pulumi
import pulumi_aws as aws
from typing import Dict, Any, Optional

METRICS_NAMESPACE = "ContainerInsights"
APPLICATION_NAMESPACE = "iAgent/Application"

# alarm name suffix -> (namespace, metric, threshold)
ALARMS = {
    "high-cpu": (METRICS_NAMESPACE, "node_cpu_utilization", 80),
    "high-memory": (METRICS_NAMESPACE, "node_memory_utilization", 85),
    "high-error-rate": (APPLICATION_NAMESPACE, "ErrorRate", 5),
}

CLUSTER_WIDGETS = [
    ("node_cpu_utilization", "Node CPU utilization"),
    ("node_memory_utilization", "Node memory utilization"),
    ("cluster_node_count", "Cluster node count"),
]

# metric -> (title, statistic)
APPLICATION_WIDGETS = {
    "RequestCount": ("Application request count", "Sum"),
    "ResponseTime": ("Application response time", "Average"),
    "ErrorRate": ("Application error rate", "Average"),
}


def dashboard_body(cluster_name: str, region: str) -> str:
    """Cluster row (node CPU, memory, count) above an application row (requests, latency, errors)"""
    widgets = []
    for i, (metric, title) in enumerate(CLUSTER_WIDGETS):
        widgets.append({
            "type": "metric",
            "x": i * 8,
            "y": 0,
            "width": 8,
            "height": 6,
            "properties": {
                "title": title,
                "region": region,
                "stat": "Average",
                "period": 300,
                "metrics": [[METRICS_NAMESPACE, metric, "ClusterName", cluster_name]]
            }
        })

    for i, (metric, (title, stat)) in enumerate(APPLICATION_WIDGETS.items()):
        widgets.append({
            "type": "metric",
            "x": i * 8,
            "y": 6,
            "width": 8,
            "height": 6,
            "properties": {
                "title": title,
                "region": region,
                "stat": stat,
                "period": 60,
                "metrics": [[APPLICATION_NAMESPACE, metric]]
            }
        })
    return json.dumps({"widgets": widgets})


def create_dashboard_resources(cluster_name: str, region: str) -> Dict[str, Any]:
    """
    Create the CloudWatch dashboard for a cluster

    Args:
        cluster_name: EKS cluster name
        region: AWS region the metrics live in

    Returns:
        Dict with dashboard resource and outputs
    """
    dashboard = aws.cloudwatch.Dashboard(
        f"{cluster_name}-dashboard",
        dashboard_name=f"{cluster_name}-dashboard",
        dashboard_body=dashboard_body(cluster_name, region)
    )

    return {
        "dashboard_name": dashboard.dashboard_name,
        "dashboard_arn": dashboard.dashboard_arn,
        "_dashboard": dashboard
    }


def create_alarm_topic(name: str, alarm_email: Optional[str] = None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the SNS topic alarms and budgets publish to

    Args:
        name: Cluster name used as prefix
        alarm_email: Optional address subscribed to the topic
        tags: Additional tags

    Returns:
        Dict with topic, policy, optional subscription and outputs
    """
    tags = tags or {}

    topic = aws.sns.Topic(
        f"{name}-alarms",
        name=f"{name}-alarms",
        display_name=f"{name} alarms",
        tags={
            **tags,
            "Name": f"{name}-alarms",
            "Module": "monitoring"
        }
    )

    # Budgets and CloudWatch both publish into the topic
    policy = aws.sns.TopicPolicy(
        f"{name}-alarms-policy",
        arn=topic.arn,
        policy=topic.arn.apply(lambda arn: json.dumps({
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Service": ["budgets.amazonaws.com", "cloudwatch.amazonaws.com"]},
                "Action": "SNS:Publish",
                "Resource": arn
            }]
        }))
    )

    subscription = None
    if alarm_email:
        subscription = aws.sns.TopicSubscription(
            f"{name}-alarms-email",
            topic=topic.arn,
            protocol="email",
            endpoint=alarm_email
        )

    return {
        "topic": topic,
        "policy": policy,
        "subscription": subscription,
        "topic_arn": topic.arn
    }


def create_metric_alarms(name: str, topic_arn: pulumi.Output[str],
                         tags: Dict[str, str] = None) -> Dict[str, aws.cloudwatch.MetricAlarm]:
    tags = tags or {}

    alarms = {}
    for suffix, (namespace, metric, threshold) in ALARMS.items():
        alarms[suffix] = aws.cloudwatch.MetricAlarm(
            f"{name}-{suffix}",
            name=f"{name}-{suffix}",
            namespace=namespace,
            metric_name=metric,
            dimensions={"ClusterName": name} if namespace == METRICS_NAMESPACE else None,
            statistic="Average",
            period=300,
            evaluation_periods=2,
            threshold=threshold,
            comparison_operator="GreaterThanThreshold",
            treat_missing_data="notBreaching",
            alarm_actions=[topic_arn],
            ok_actions=[topic_arn],
            tags={**tags, "Module": "monitoring"}
        )
    return alarms


def create_cost_budget(name: str, limit_usd: int, topic_arn: pulumi.Output[str],
                       depends_on=None) -> aws.budgets.Budget:
    """Monthly cost budget that notifies the topic at 80% actual and 100% forecasted spend"""
    notifications = [
        aws.budgets.BudgetNotificationArgs(
            comparison_operator="GREATER_THAN",
            notification_type=notification_type,
            threshold=threshold,
            threshold_type="PERCENTAGE",
            subscriber_sns_topic_arns=[topic_arn]
        )
        for notification_type, threshold in (("ACTUAL", 80), ("FORECASTED", 100))
    ]

    return aws.budgets.Budget(
        f"{name}-monthly-budget",
        name=f"{name}-monthly-budget",
        budget_type="COST",
        limit_amount=str(limit_usd),
        limit_unit="USD",
        time_unit="MONTHLY",
        cost_filters=[aws.budgets.BudgetCostFilterArgs(
            name="TagKeyValue",
            values=[f"user:Cluster${name}"]
        )],
        notifications=notifications,
        opts=pulumi.ResourceOptions(depends_on=depends_on or [])
    )


def create_alarm_resources(cluster_name: str, alarm_email: Optional[str] = None,
                           cost_alert_threshold: Optional[int] = None,
                           tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the alarm topic, its metric alarms and the optional cost budget

    Args:
        cluster_name: EKS cluster name
        alarm_email: Optional email subscribed to the topic
        cost_alert_threshold: Monthly budget in USD; no budget when falsy
        tags: Additional tags

    Returns:
        Dict with alarm resources and outputs
    """
    tags = tags or {}

    topic_result = create_alarm_topic(cluster_name, alarm_email, tags)
    alarms = create_metric_alarms(cluster_name, topic_result["topic_arn"], tags)

    budget = None
    if cost_alert_threshold:
        budget = create_cost_budget(
            cluster_name,
            cost_alert_threshold,
            topic_result["topic_arn"],
            depends_on=[topic_result["policy"]]
        )

    return {
        "topic_arn": topic_result["topic_arn"],
        "alarm_names": [alarm.name for alarm in alarms.values()],
        "budget_name": budget.name if budget else None,
        # Keep references to resources for dependencies
        "_topic": topic_result["topic"],
        "_subscription": topic_result["subscription"],
        "_alarms": alarms,
        "_budget": budget
    }
