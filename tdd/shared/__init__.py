# Cross-cutting test utilities shared across all test types
#
# - assertions/: HTTP response assertions (API and Git smart protocol)
# - fakes.py: in-memory GitEngine
# - git_helpers.py: real dulwich repositories on disk
