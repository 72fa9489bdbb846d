# testflow/tests/conftest.py

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from testflow import store
from testflow.models import TestRequest, UserRole
from testflow.tests.factories import BASE_DRAFT, CHEM_KEY, MECH_KEY
from testflow.tests.fakes import FakeRenderer
from testflow.workflows import engine


# ---------------------------------------------------------------
# Users
# ---------------------------------------------------------------
@pytest.fixture
def make_user(db) -> Callable[..., Any]:
    User = get_user_model()

    def _make(username: str, role: Optional[str] = None, department: str = "", **extra):
        user = User.objects.create_user(
            username=username,
            email=f"{username}@lab.example",
            password="pass123",
            **extra,
        )
        if role:
            UserRole.objects.create(user=user, role=role, department=department)
        return user

    return _make


@pytest.fixture
def receptionist(make_user):
    return make_user("reception", "RECEPTIONIST")


@pytest.fixture
def section_head(make_user):
    return make_user("chemhead", "SECTION_HEAD", "chemical")


@pytest.fixture
def tester(make_user):
    return make_user("tester", "TESTER", "mechanical")


@pytest.fixture
def lab_admin(make_user):
    return make_user("labadmin", is_superuser=True, is_staff=True)


@pytest.fixture
def api_for() -> Callable[[Any], APIClient]:
    """
    APIClient authenticated as the given user via force_authenticate.
    """

    def _client(user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


# ---------------------------------------------------------------
# Test requests
# ---------------------------------------------------------------
@pytest.fixture
def request_draft() -> Callable[..., Dict[str, Any]]:
    def _draft(**overrides) -> Dict[str, Any]:
        draft = copy.deepcopy(BASE_DRAFT)
        draft.update(overrides)
        return draft

    return _draft


@pytest.fixture
def make_request(db, request_draft) -> Callable[..., TestRequest]:
    def _make(user=None, **overrides) -> TestRequest:
        return store.create_test_request(request_draft(**overrides), user=user)

    return _make


@pytest.fixture
def assigned_request(make_request, receptionist, section_head) -> TestRequest:
    """
    Two-department request whose job cards are both approved.
    """
    test_request = make_request(user=receptionist)
    engine.create_job_card(test_request.pk, user=receptionist)
    engine.send_job_card(test_request.pk, user=receptionist)
    engine.approve_job_card(test_request.pk, "chemical", "asha", user=section_head)
    engine.approve_job_card(test_request.pk, "mechanical", "ravi", user=section_head)
    test_request.refresh_from_db()
    return test_request


@pytest.fixture
def reports_uploaded(assigned_request, tester) -> TestRequest:
    for key in (CHEM_KEY, MECH_KEY):
        engine.upload_report(
            assigned_request.pk,
            key,
            "<p>Observed values within limits.</p>",
            equipment_table="<p>UTM 600kN</p>",
            result_table="<p>Pass</p>",
            user=tester,
        )
    return assigned_request


# ---------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------
@pytest.fixture
def fake_renderer(settings):
    settings.TESTFLOW_DOCUMENT_RENDERER = "testflow.tests.fakes.FakeRenderer"
    FakeRenderer.calls = []
    FakeRenderer.fail = False
    yield FakeRenderer
    FakeRenderer.fail = False
