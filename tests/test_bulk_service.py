"""
Unit tests for BulkOperationService.
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from provisioning.database.models import AssociationStatus, FreelancerStatus
from provisioning.exceptions import PersistenceError
from provisioning.services.bulk_service import BulkOperationService


@pytest.fixture
def people():
    return [
        {"email": "a@example.com", "first_name": "Ann", "last_name": "A"},
        {"email": "b@example.com", "first_name": "Ben", "last_name": "B"},
        {"email": "c@example.com", "first_name": "Cat", "last_name": "C"},
    ]


class TestBulkOnboard:
    """Test bulk_onboard()."""

    @pytest.mark.asyncio
    async def test_one_result_per_freelancer_in_order(self, services, enabled_platforms, people):
        created = [await services.freelancers.create(enabled_platforms.id, p) for p in people]
        ids = [f.id for f in created]

        result = await services.bulk.bulk_onboard(ids, ["amove", "upwork"])

        assert [r.freelancer_id for r in result.results] == [str(i) for i in ids]
        assert result.succeeded == 3
        assert all(r.progress.completed_platforms == 2 for r in result.results)

    @pytest.mark.asyncio
    async def test_failure_for_one_freelancer_does_not_stop_others(self, services, enabled_platforms, people):
        created = [await services.freelancers.create(enabled_platforms.id, p) for p in people]
        missing = uuid.uuid4()

        result = await services.bulk.bulk_onboard([created[0].id, missing, created[1].id], ["amove"])

        assert [r.success for r in result.results] == [True, False, True]
        assert result.results[1].error_type == "not_found"
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_partial_platform_failure_reported(self, services, enabled_platforms, people):
        freelancer = await services.freelancers.create(enabled_platforms.id, people[0])

        result = await services.bulk.bulk_onboard([freelancer.id], ["amove", "fiverr"])

        item = result.results[0]
        assert item.success is False
        assert item.status == "failed"
        assert item.error == "fiverr: platform not enabled"
        assert item.progress.completed_platforms == 1

    @pytest.mark.asyncio
    async def test_persistence_error_recorded_per_freelancer(self, services, enabled_platforms, people):
        freelancer = await services.freelancers.create(enabled_platforms.id, people[0])

        with patch.object(services.onboarding, "onboard", AsyncMock(side_effect=PersistenceError("down"))):
            result = await services.bulk.bulk_onboard([freelancer.id], ["amove"])

        assert result.results[0].error_type == "persistence"
        assert result.results[0].error == "down"

    @pytest.mark.asyncio
    async def test_bounded_entity_concurrency(self, services, enabled_platforms, people, modules):
        created = [await services.freelancers.create(enabled_platforms.id, p) for p in people]
        modules["amove"].script["create_delay"] = 0.1
        bulk = BulkOperationService(services.onboarding, services.freelancers, max_concurrency=2)

        await bulk.bulk_onboard([f.id for f in created], ["amove"])

        assert modules["amove"].in_flight["peak"] == 2


class TestBulkStatus:
    """Test bulk deactivate / reactivate."""

    @pytest.mark.asyncio
    async def test_deactivate_sets_inactive_without_touching_associations(
        self, services, enabled_platforms, freelancer, modules
    ):
        await services.onboarding.onboard(freelancer.id, ["amove"])

        result = await services.bulk.bulk_deactivate_entities([freelancer.id])

        assert result.results[0].status == FreelancerStatus.INACTIVE.value
        association = await services.associations.get(freelancer.id, "amove")
        assert association.status == AssociationStatus.ACTIVE.value
        assert modules["amove"].calls["delete_user"] == 0

    @pytest.mark.asyncio
    async def test_reactivate(self, services, freelancer):
        await services.bulk.bulk_deactivate_entities([freelancer.id])

        result = await services.bulk.bulk_reactivate_entities([freelancer.id, uuid.uuid4()])

        assert result.results[0].status == FreelancerStatus.ACTIVE.value
        assert result.results[1].success is False
        assert result.results[1].error_type == "not_found"
