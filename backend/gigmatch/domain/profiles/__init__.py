"""Profile collaborator exports."""

from .directory import PostgresProfileDirectory, ProfileDirectory, get_eligible_target  # noqa: F401
from .models import Party, Role, parse_party_id  # noqa: F401
