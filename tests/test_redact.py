from deployctl.redact import redact_lines, redact_string


def test_tokenish_lines_are_redacted():
    assert redact_string("SUPABASE_SERVICE_ROLE_KEY=abc") == "[REDACTED]"
    assert redact_string("password: hunter2") == "[REDACTED]"


def test_url_credentials_are_masked():
    assert redact_string("connecting to postgresql://app:s3cr3t@db:5432/app") == \
        "connecting to postgresql://app:[REDACTED]@db:5432/app"


def test_plain_text_untouched():
    assert redact_string("docker-compose up -d") == "docker-compose up -d"


def test_log_lines_redacted_individually():
    logs = "backend | starting\nbackend | JWT_SECRET=abc\nbackend | db at postgres://app:pw@db/app"

    assert redact_lines(logs).splitlines() == [
        "backend | starting",
        "[REDACTED]",
        "backend | db at postgres://app:[REDACTED]@db/app",
    ]
