# tests/test_enhancers.py
# @ai-rules:
# 1. [Pattern]: Run the real EnhancerPipeline over FakeCluster objects; assert on the Alert it mutates.
# 2. [Constraint]: Fingerprint is append-only. Every test asserts the full list, not just membership.
"""Unit tests for the pod, cronjob and fallback enhancers."""
from __future__ import annotations

import pytest

from kubesignal.enhancers.pipeline import EnhancerContext, EnhancerPipeline
from kubesignal.integrations.gke import GKE_CONTEXT, GkeMetadata
from kubesignal.models import Alert, Level
from kubesignal.observers.events import build_alert
from kubesignal.ownership import OwnershipResolver
from kubesignal.state.event_buffer import EventBufferEntry, RecentEventBuffer

from tests.builders import NOW, FakeCluster, make_cronjob, make_event, make_job, make_pod, owner_ref


def _pipeline(cluster, gke=None, steps=None):
    return EnhancerPipeline(cluster, OwnershipResolver(cluster), gke=gke, steps=steps)


async def _enhance(cluster, event, buffer=None, gke=None):
    alert = build_alert(event)
    await _pipeline(cluster, gke=gke).run(alert, event, buffer or RecentEventBuffer())
    return alert


def _cron_cluster():
    cronjob = make_cronjob("nightly-backup")
    job = make_job("nightly-backup-123", cronjob="nightly-backup")
    pod = make_pod("nightly-backup-123-x7k2p", owners=[owner_ref("Job", "nightly-backup-123")], node_name="node-b")
    return FakeCluster(pods=[pod], jobs=[job], cronjobs=[cronjob])


@pytest.mark.asyncio
async def test_cronjob_pod_gets_full_attribution():
    event = make_event("Error: exit code 1", name="nightly-backup-123-x7k2p", reason="Failed")

    alert = await _enhance(_cron_cluster(), event)

    assert alert.fingerprint == ["Error: exit code 1", "CronJob", "nightly-backup"]
    assert alert.message == "nightly-backup-123-x7k2p: Error: exit code 1"
    assert alert.tags["node_name"] == "node-b"
    assert alert.tags["cronjob_name"] == "nightly-backup"
    assert alert.contexts["Monitor"] == {"Slug": "nightly-backup"}
    assert alert.contexts["Cronjob"]["Metadata"]["name"] == "nightly-backup"
    assert "managedFields" not in alert.contexts["Cronjob"]["Metadata"]
    assert alert.breadcrumbs[-1].message == "Created cronjob nightly-backup"
    assert alert.breadcrumbs[-1].timestamp == NOW
    assert "Pod Metadata" in alert.extras
    assert "managedFields" not in alert.extras["Pod Metadata"]
    assert "Involved Object" not in alert.extras


@pytest.mark.asyncio
async def test_job_event_is_attributed_to_its_cronjob():
    event = make_event("Job has reached the specified backoff limit", kind="Job", name="nightly-backup-123",
                       reason="BackoffLimitExceeded")

    alert = await _enhance(_cron_cluster(), event)

    assert alert.fingerprint == ["Job has reached the specified backoff limit", "CronJob", "nightly-backup"]
    assert alert.tags["cronjob_name"] == "nightly-backup"
    assert alert.tags["job_name"] == "nightly-backup-123"
    # Only pods get their name prefixed
    assert alert.message == "Job has reached the specified backoff limit"


@pytest.mark.asyncio
async def test_cronjob_event_attributes_to_itself():
    event = make_event("Cannot determine if job needs to be started", kind="CronJob", name="nightly-backup",
                       reason="FailedNeedsStart")

    alert = await _enhance(_cron_cluster(), event)

    assert alert.fingerprint == ["Cannot determine if job needs to be started", "CronJob", "nightly-backup"]
    assert alert.contexts["Monitor"] == {"Slug": "nightly-backup"}


@pytest.mark.asyncio
async def test_pod_with_non_cronjob_owner_uses_owner_in_fingerprint():
    pod = make_pod("web-5d8f-abc", owners=[owner_ref("ReplicaSet", "web-5d8f")])
    event = make_event("Readiness probe failed", name="web-5d8f-abc", reason="Unhealthy")

    alert = await _enhance(FakeCluster(pods=[pod]), event)

    assert alert.fingerprint == ["Readiness probe failed", "ReplicaSet", "web-5d8f"]
    assert "cronjob_name" not in alert.tags


@pytest.mark.asyncio
async def test_job_pod_without_cronjob_falls_back_to_job_owner():
    job = make_job("one-off")
    pod = make_pod("one-off-q1", owners=[owner_ref("Job", "one-off")])
    event = make_event("BackOff", name="one-off-q1")

    alert = await _enhance(FakeCluster(pods=[pod], jobs=[job]), event)

    assert alert.fingerprint == ["BackOff", "Job", "one-off"]


@pytest.mark.asyncio
async def test_other_kinds_seed_fingerprint_with_message_then_name():
    event = make_event("Failed to bind volumes", kind="PersistentVolumeClaim", name="data-0",
                       reason="FailedBinding")

    alert = await _enhance(FakeCluster(), event)

    assert alert.fingerprint == ["Failed to bind volumes", "data-0"]
    assert alert.tags["persistentvolumeclaim_name"] == "data-0"


@pytest.mark.asyncio
async def test_pod_breadcrumbs_from_buffer_are_filtered_and_leveled():
    buffer = RecentEventBuffer()
    for event in (
        make_event("Scheduled", event_type="Normal", reason="Scheduled"),
        make_event("Unrelated", name="other-pod", event_type="Warning"),
        make_event("Probe failed", event_type="Warning", reason="Unhealthy"),
    ):
        buffer.add(EventBufferEntry.from_event(event, event.last_timestamp))

    alert = await _enhance(FakeCluster(pods=[make_pod("web-0")]), make_event("OOMKilled"), buffer=buffer)

    assert [(b.message, b.level) for b in alert.breadcrumbs] == [
        ("Scheduled", Level.INFO),
        ("Probe failed", Level.WARNING),
    ]
    assert all(b.category == "kubernetes.event" for b in alert.breadcrumbs)


@pytest.mark.asyncio
async def test_gke_pod_logs_link_added_when_metadata_known():
    gke = GkeMetadata(cluster_name="prod", cluster_location="europe-west1", project_id="acme")

    alert = await _enhance(FakeCluster(pods=[make_pod("web-0")]), make_event(), gke=gke)

    link = alert.contexts[GKE_CONTEXT]["Pod logs"]
    assert link.startswith("https://console.cloud.google.com/logs/query;query=")
    assert link.endswith("?project=acme")
    assert "web-0" in link


@pytest.mark.asyncio
async def test_gke_link_omitted_when_metadata_incomplete():
    gke = GkeMetadata(cluster_name="prod")

    alert = await _enhance(FakeCluster(pods=[make_pod("web-0")]), make_event(), gke=gke)

    assert GKE_CONTEXT not in alert.contexts


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_the_pipeline():
    seen = []

    async def broken(ctx: EnhancerContext) -> None:
        raise RuntimeError("boom")

    async def recorder(ctx: EnhancerContext) -> None:
        seen.append(ctx.name)

    event = make_event()
    alert = Alert(message="x")
    await _pipeline(FakeCluster(), steps=[broken, recorder]).run(alert, event, RecentEventBuffer())

    assert seen == ["web-0"]


@pytest.mark.asyncio
async def test_involved_object_fetched_once_per_alert():
    cluster = _cron_cluster()
    event = make_event("Error", name="nightly-backup-123-x7k2p")

    await _enhance(cluster, event)

    assert cluster.calls.count(("Pod", "default", "nightly-backup-123-x7k2p")) == 1
