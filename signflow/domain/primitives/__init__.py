"""Domain primitives shared by append-only records."""

from signflow.domain.primitives.prevent_delete import DeletePreventionMixin

__all__: list[str] = ["DeletePreventionMixin"]
