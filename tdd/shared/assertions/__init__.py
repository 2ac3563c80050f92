# Custom assertion helpers

from .api import (
    assert_auth_challenge,
    assert_created_response,
    assert_deleted_response,
    assert_error_response,
    assert_git_head_response,
    assert_git_info_refs_response,
    assert_git_pack_response,
    assert_json_contains,
    assert_json_list_length,
    assert_not_found,
    assert_status_code,
    assert_validation_error,
)

__all__ = [
    # API assertions
    "assert_status_code",
    "assert_json_contains",
    "assert_json_list_length",
    "assert_error_response",
    "assert_created_response",
    "assert_deleted_response",
    "assert_not_found",
    "assert_validation_error",
    # Git protocol assertions
    "assert_git_info_refs_response",
    "assert_git_head_response",
    "assert_git_pack_response",
    "assert_auth_challenge",
]
