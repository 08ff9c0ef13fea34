"""Input validation for CLI arguments."""
import re
import sys

# RFC 1123 DNS subdomain, as required for Kubernetes Secret names
_SECRET_NAME_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
_MAX_SECRET_NAME_LENGTH = 253


def validate_secret_name(name: str) -> None:
    """
    Validate a Kubernetes Secret name.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        sys.exit(2)

    if len(name) > _MAX_SECRET_NAME_LENGTH or not _SECRET_NAME_PATTERN.match(name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nSecret names must be lowercase RFC 1123 subdomains:", file=sys.stderr)
        print("  letters a-z, digits, '-' and '.', starting and ending alphanumeric,", file=sys.stderr)
        print(f"  at most {_MAX_SECRET_NAME_LENGTH} characters", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ db-credentials", file=sys.stderr)
        print("  ✓ api.key.prod", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ DB_PASSWORD (uppercase, underscore)", file=sys.stderr)
        print("  ✗ -secret (leading hyphen)", file=sys.stderr)
        sys.exit(2)


def validate_namespace(namespace: str) -> None:
    """Namespaces are RFC 1123 labels (no dots, at most 63 characters)."""
    if not namespace or len(namespace) > 63 or "." in namespace or not _SECRET_NAME_PATTERN.match(namespace):
        print(f"Error: Invalid namespace '{namespace}'", file=sys.stderr)
        sys.exit(2)
