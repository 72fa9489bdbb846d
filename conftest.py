import pytest

@pytest.fixture(autouse=True)
def _test_environment(settings):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False

    # Prevent “secure cookie” behavior from interfering with session auth in tests
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False

    # Tasks run inline; section-head notices off unless a test opts in
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.SECTION_HEAD_EMAILS = {"chemical": [], "mechanical": []}
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = False
    settings.DEFAULT_FROM_EMAIL = "lab@example.com"
