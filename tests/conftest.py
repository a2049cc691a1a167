"""Shared fixtures for the nomad_bootstrap test suite."""

from __future__ import annotations

import pytest

from nomad_bootstrap.models.node import AgentRole, ClusterTopology, NodeIdentity


@pytest.fixture
def identity() -> NodeIdentity:
    return NodeIdentity(
        instance_id="i-0abc123def4567890",
        private_ip="10.0.1.15",
        availability_zone="us-east-1a",
        region="us-east-1",
    )


@pytest.fixture
def server_topology() -> ClusterTopology:
    return ClusterTopology(
        role={AgentRole.SERVER},
        expected_server_count=3,
        tag_key="Cluster",
        tag_value="prod",
    )
