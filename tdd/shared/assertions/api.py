"""
Assertion helpers for repohost API tests.

JSON helpers check the management API and its ``{"detail", "cause"}``
error bodies; the Git helpers check smart-HTTP framing.
"""
from typing import Any

from httpx import Response


def assert_status_code(response: Response, expected: int) -> None:
    """Fail with the response body when the status differs."""
    assert response.status_code == expected, (
        f"{response.request.method} {response.request.url} -> "
        f"{response.status_code} (wanted {expected}): {response.text}"
    )


def assert_json_contains(response: Response, expected: dict[str, Any] = None, **fields) -> None:
    """Partial match of the JSON object against ``expected`` and/or ``fields``."""
    wanted = dict(expected or {})
    wanted.update(fields)
    body = response.json()
    missing = [key for key in wanted if key not in body]
    assert not missing, f"Keys {missing} absent from {body}"
    mismatched = {k: (body[k], v) for k, v in wanted.items() if body[k] != v}
    assert not mismatched, f"Mismatched fields (got, wanted): {mismatched}"


def assert_json_list_length(response: Response, expected_length: int) -> None:
    body = response.json()
    assert isinstance(body, list), f"Wanted a JSON list, got {body!r}"
    assert len(body) == expected_length, f"Wanted {expected_length} entries, got {len(body)}: {body}"


def assert_error_response(response: Response, status_code: int, detail: str = None) -> dict[str, Any]:
    """Check an error body carries both ``detail`` and ``cause``; returns it."""
    assert_status_code(response, status_code)
    body = response.json()
    assert {"detail", "cause"} <= body.keys(), f"Error body lacks detail/cause: {body}"
    if detail is not None:
        assert body["detail"] == detail, f"detail was {body['detail']!r}"
    return body


def assert_created_response(response: Response, expected: dict[str, Any] = None, **fields) -> dict[str, Any]:
    assert_status_code(response, 201)
    if expected or fields:
        assert_json_contains(response, expected, **fields)
    return response.json()


def assert_deleted_response(response: Response) -> None:
    assert_status_code(response, 204)
    assert not response.content, f"204 carried a body: {response.content!r}"


def assert_not_found(response: Response) -> None:
    """404 from the management API, with a 'not found' detail."""
    body = assert_error_response(response, 404)
    assert "not found" in body["detail"].lower(), f"detail was {body['detail']!r}"


def assert_validation_error(response: Response) -> dict[str, Any]:
    """422 from FastAPI request validation; returns the body."""
    assert_status_code(response, 422)
    body = response.json()
    assert isinstance(body.get("detail"), list), f"Not a validation error body: {body}"
    return body


# -----------------------------------------------------------------------------
# Git Protocol Assertions
# -----------------------------------------------------------------------------

def _first_pkt_line(content: bytes) -> bytes:
    length = int(content[:4], 16)
    assert length >= 4, f"First pkt-line is a flush/delim: {content[:16]!r}"
    return content[4:length]


def assert_git_info_refs_response(response: Response, service: str) -> bytes:
    """Ref advertisement for ``service``: announcement pkt-line, flush, refs, flush.

    Returns the raw body.
    """
    assert_status_code(response, 200)
    media_type = f"application/x-{service}-advertisement"
    assert response.headers["content-type"] == media_type, response.headers["content-type"]
    assert response.headers.get("cache-control") == "no-cache"

    content = response.content
    announcement = f"# service={service}\n".encode()
    assert _first_pkt_line(content) == announcement, f"Bad announcement: {content[:40]!r}"
    assert content[4 + len(announcement):][:4] == b"0000", "Announcement not followed by flush"
    assert content.endswith(b"0000"), "Advertisement not terminated by flush"
    return content


def assert_git_head_response(response: Response) -> str:
    """Dumb-protocol HEAD body; returns e.g. ``ref: refs/heads/main``."""
    assert_status_code(response, 200)
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert text.endswith("\n"), f"HEAD body lacks trailing newline: {text!r}"
    line = text.rstrip("\n")
    assert line.startswith("ref: refs/heads/"), f"HEAD is not symbolic: {line!r}"
    return line


def assert_git_pack_response(response: Response, service: str) -> bytes:
    """Stateless-RPC result for ``service``; returns the raw body."""
    assert_status_code(response, 200)
    media_type = f"application/x-{service}-result"
    assert response.headers["content-type"] == media_type, response.headers["content-type"]
    assert response.headers.get("cache-control") == "no-cache"
    return response.content


def assert_auth_challenge(response: Response) -> str:
    """401 with a Basic challenge; returns the WWW-Authenticate value."""
    assert_status_code(response, 401)
    challenge = response.headers.get("www-authenticate", "")
    assert challenge.startswith("Basic realm="), f"Not a Basic challenge: {challenge!r}"
    return challenge
