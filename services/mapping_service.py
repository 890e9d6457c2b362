"""
Mapping store.

The product mapping lives in product_mappings as versioned rows; the row
with the highest version is active and older rows are history. When the
database has no mapping (or is unreachable) the local JSON file is used.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import json

from pydantic import ValidationError as PydanticValidationError
import structlog

from config import get_supabase_client, settings, MAPPINGS_TABLE
from models.mapping import (
    Mapping,
    MappingResponse,
    MappingUpdateResponse,
    MappingHistoryEntry,
)
from exceptions import (
    DatabaseError,
    MappingNotFoundError,
    InvalidMappingError,
    MappingVersionConflictError,
)
from services.quantity_resolver import validate_products

logger = structlog.get_logger(__name__)


def parse_mapping(data: dict, version: int = 0, **extra) -> Mapping:
    """
    Build a Mapping from stored JSON.

    Raises:
        InvalidMappingError: rows that fail validation
    """
    try:
        return Mapping.model_validate({**data, "version": version, **extra})
    except (PydanticValidationError, ValueError) as e:
        problems = []
        if isinstance(e, PydanticValidationError):
            problems = [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            ]
        raise InvalidMappingError(f"Mapping failed validation: {e}", problems=problems)


class MappingService:
    """
    Versioned product mapping.

    Sources, in priority order: database, then file.
    """

    def __init__(self, file_path: Optional[str] = None):
        self.db = get_supabase_client()
        self.table = MAPPINGS_TABLE
        self.file_path = Path(file_path or settings.mapping_file_path)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_mapping(self) -> MappingResponse:
        """
        Get the active mapping.

        Returns:
            MappingResponse with the source it came from

        Raises:
            MappingNotFoundError: No source has a mapping
            InvalidMappingError: The stored mapping is malformed
        """
        row = None
        try:
            row = self._latest_row()
        except DatabaseError as e:
            logger.warning("mapping_database_unavailable", error=e.message)

        if row:
            mapping = parse_mapping(
                row.get("mapping") or {},
                version=row["version"],
                updated_at=row.get("updated_at"),
                updated_by=row.get("updated_by"),
            )
            logger.info(
                "mapping_loaded",
                source="database",
                version=mapping.version,
                products=len(mapping.products)
            )
            return MappingResponse(mapping=mapping, source="database", version=mapping.version)

        mapping = self._load_file()
        if mapping is None:
            raise MappingNotFoundError(["database", "file"])

        logger.info(
            "mapping_loaded",
            source="file",
            version=mapping.version,
            products=len(mapping.products)
        )
        return MappingResponse(mapping=mapping, source="file", version=mapping.version)

    def current_version(self) -> int:
        """Version of the active database mapping (0 when none)."""
        row = self._latest_row()
        return row["version"] if row else 0

    def get_history(self, limit: int = 10) -> list[MappingHistoryEntry]:
        """
        Get stored mapping versions, newest first.

        Args:
            limit: Max versions to return
        """
        try:
            response = (
                self.db.table(self.table)
                .select("version, updated_by, updated_at, product_count")
                .order("version", desc=True)
                .limit(limit)
                .execute()
            )
            return [MappingHistoryEntry(**row) for row in response.data]

        except Exception as e:
            logger.error("mapping_history_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def update_mapping(
        self,
        mapping: Mapping,
        updated_by: str = "api",
        expected_version: Optional[int] = None
    ) -> MappingUpdateResponse:
        """
        Store a new mapping version.

        Args:
            mapping: Full product list
            updated_by: Who made the change
            expected_version: When given, the write only succeeds if the
                active version still equals it

        Returns:
            MappingUpdateResponse with the new version

        Raises:
            InvalidMappingError: Bundle with an unusable divisor
            MappingVersionConflictError: Active version moved on
        """
        validate_products(mapping.products)

        current = self.current_version()
        if expected_version is not None and expected_version != current:
            logger.warning(
                "mapping_version_conflict",
                expected_version=expected_version,
                current_version=current
            )
            raise MappingVersionConflictError(expected_version, current)

        new_version = current + 1
        updated_at = datetime.now(timezone.utc)
        row = {
            "version": new_version,
            "mapping": mapping.to_store(),
            "product_count": len(mapping.products),
            "updated_by": updated_by,
            "updated_at": updated_at.isoformat(),
        }

        try:
            self.db.table(self.table).insert(row).execute()
        except Exception as e:
            # version is the primary key; a concurrent writer took it
            if "duplicate" in str(e).lower():
                raise MappingVersionConflictError(current, new_version)
            logger.error("mapping_update_failed", error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info(
            "mapping_updated",
            version=new_version,
            updated_by=updated_by,
            products=len(mapping.products)
        )

        return MappingUpdateResponse(
            success=True,
            version=new_version,
            product_count=len(mapping.products),
            updated_at=updated_at
        )

    # ===================
    # HELPERS
    # ===================

    def _latest_row(self) -> Optional[dict]:
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .order("version", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("mapping_select_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return response.data[0] if response.data else None

    def _load_file(self) -> Optional[Mapping]:
        if not self.file_path.exists():
            logger.debug("mapping_file_missing", path=str(self.file_path))
            return None

        try:
            data = json.loads(self.file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidMappingError(f"Mapping file is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise InvalidMappingError("Mapping file must contain an object with 'products'")

        return parse_mapping(
            {"products": data.get("products", [])},
            version=data.get("version", 0),
            updated_at=data.get("updated_at") or data.get("lastUpdated"),
            updated_by=data.get("updated_by") or data.get("updatedBy"),
        )


# Singleton instance
_mapping_service: Optional[MappingService] = None


def get_mapping_service() -> MappingService:
    """Get or create mapping service instance."""
    global _mapping_service
    if _mapping_service is None:
        _mapping_service = MappingService()
    return _mapping_service
