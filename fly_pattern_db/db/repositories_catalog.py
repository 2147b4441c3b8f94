"""Repository classes for the production fly pattern catalog."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import MaterialType, guess_material_type
from fly_pattern_db.core.schema import CatalogMaterial, FlyPattern
from fly_pattern_db.db.models_catalog import (
    FlyPatternDB,
    FlyPatternMaterialDB,
    MaterialDB,
    MaterialSubstitutionDB,
    ResourceDB,
    TyingStepDB,
    VariationDB,
    VariationOverrideDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class MaterialRepository:
    """Repository for production materials and substitutions."""

    def __init__(self, session: Session):
        self.session = session

    def upsert(self, name: str, material_type: MaterialType) -> CatalogMaterial:
        """Get the material with this exact (name, type), creating it if absent."""
        return self._to_domain(self._upsert_db(name, material_type))

    def find_or_create(self, name: str) -> CatalogMaterial | None:
        """
        Resolve a material referenced only by name.

        Tries a case-insensitive exact match, then a containing match, then
        creates a new material with a type guessed from the name.
        """
        name = name.strip() if name else ""
        if not name:
            return None

        lowered = name.lower()
        stmt = select(MaterialDB).where(func.lower(MaterialDB.name) == lowered).limit(1)
        db_item = self.session.execute(stmt).scalars().first()
        if db_item is None:
            stmt = (
                select(MaterialDB)
                .where(func.lower(MaterialDB.name).contains(lowered, autoescape=True))
                .order_by(MaterialDB.name)
                .limit(1)
            )
            db_item = self.session.execute(stmt).scalars().first()
        if db_item is None:
            db_item = self._upsert_db(name, guess_material_type(name))
        return self._to_domain(db_item)

    def list_by_type(self, material_type: MaterialType) -> list[CatalogMaterial]:
        """List production materials of one type."""
        stmt = (
            select(MaterialDB)
            .where(MaterialDB.type == material_type.value)
            .order_by(MaterialDB.name)
        )
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(m) for m in result]

    def add_substitution(
        self,
        material_id: UUID | str,
        substitute_id: UUID | str,
        substitution_type: str = "equivalent",
        notes: str = "",
    ) -> bool:
        """Record a substitution unless the pair already exists."""
        stmt = select(MaterialSubstitutionDB).where(
            MaterialSubstitutionDB.material_id == str(material_id),
            MaterialSubstitutionDB.substitute_material_id == str(substitute_id),
        )
        if self.session.execute(stmt).scalar_one_or_none() is not None:
            return False
        self.session.add(
            MaterialSubstitutionDB(
                material_id=str(material_id),
                substitute_material_id=str(substitute_id),
                substitution_type=substitution_type,
                notes=notes,
            )
        )
        self.session.flush()
        return True

    def count(self) -> int:
        """Get total count of materials."""
        stmt = select(func.count()).select_from(MaterialDB)
        return self.session.execute(stmt).scalar() or 0

    def _upsert_db(self, name: str, material_type: MaterialType) -> MaterialDB:
        stmt = select(MaterialDB).where(
            MaterialDB.name == name, MaterialDB.type == material_type.value
        )
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            db_item = MaterialDB(name=name, type=material_type.value)
            self.session.add(db_item)
            self.session.flush()
        return db_item

    def _to_domain(self, db_item: MaterialDB) -> CatalogMaterial:
        """Convert database model to domain model."""
        return CatalogMaterial(
            id=UUID(db_item.id),
            name=db_item.name,
            type=MaterialType(db_item.type),
        )


class FlyPatternRepository:
    """Repository for production fly patterns and their child rows."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_slug(self, slug: str) -> FlyPattern | None:
        """Get a pattern by slug."""
        db_item = self._get_db_by_slug(slug)
        return self._to_domain(db_item) if db_item else None

    def upsert(
        self,
        slug: str,
        name: str,
        category: str,
        difficulty: str,
        water_type: str,
        description: str,
        origin: str | None,
        confidence: float,
        source_count: int,
    ) -> FlyPattern:
        """Create the pattern for a slug or overwrite its scalar fields."""
        db_item = self._get_db_by_slug(slug)
        if db_item is None:
            db_item = FlyPatternDB(slug=slug)
            self.session.add(db_item)
        db_item.name = name
        db_item.category = category
        db_item.difficulty = difficulty
        db_item.water_type = water_type
        db_item.description = description
        db_item.origin = origin
        db_item.confidence = confidence
        db_item.source_count = source_count
        db_item.updated_at = _utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    def clear_children(self, pattern_id: UUID | str) -> None:
        """Delete material links, variations (with overrides) and steps. Resources stay."""
        pid = str(pattern_id)
        variation_ids = select(VariationDB.id).where(VariationDB.fly_pattern_id == pid)
        self.session.execute(
            delete(VariationOverrideDB).where(VariationOverrideDB.variation_id.in_(variation_ids))
        )
        self.session.execute(delete(VariationDB).where(VariationDB.fly_pattern_id == pid))
        self.session.execute(
            delete(FlyPatternMaterialDB).where(FlyPatternMaterialDB.fly_pattern_id == pid)
        )
        self.session.execute(delete(TyingStepDB).where(TyingStepDB.fly_pattern_id == pid))
        self.session.expire_all()

    def add_material(
        self,
        pattern_id: UUID | str,
        material_id: UUID | str,
        color: str | None,
        size: str | None,
        required: bool,
        position: int,
    ) -> None:
        self.session.add(
            FlyPatternMaterialDB(
                fly_pattern_id=str(pattern_id),
                material_id=str(material_id),
                custom_color=color,
                custom_size=size,
                required=required,
                position=position,
            )
        )
        self.session.flush()

    def add_variation(
        self,
        pattern_id: UUID | str,
        name: str,
        description: str,
        overrides: list[tuple[UUID, UUID]],
    ) -> None:
        variation = VariationDB(
            fly_pattern_id=str(pattern_id), name=name, description=description
        )
        for original_id, replacement_id in overrides:
            variation.overrides.append(
                VariationOverrideDB(
                    original_material_id=str(original_id),
                    replacement_material_id=str(replacement_id),
                )
            )
        self.session.add(variation)
        self.session.flush()

    def add_step(
        self,
        pattern_id: UUID | str,
        position: int,
        title: str,
        instruction: str,
        tip: str | None,
    ) -> None:
        self.session.add(
            TyingStepDB(
                fly_pattern_id=str(pattern_id),
                position=position,
                title=title,
                instruction=instruction,
                tip=tip,
            )
        )
        self.session.flush()

    def add_resource(
        self,
        pattern_id: UUID | str,
        url: str,
        resource_type: str,
        title: str,
        creator_name: str,
        platform: str,
    ) -> bool:
        """Attach a source link unless the pattern already has that URL."""
        stmt = select(ResourceDB).where(
            ResourceDB.fly_pattern_id == str(pattern_id), ResourceDB.url == url
        )
        if self.session.execute(stmt).scalar_one_or_none() is not None:
            return False
        self.session.add(
            ResourceDB(
                fly_pattern_id=str(pattern_id),
                url=url,
                type=resource_type,
                title=title,
                creator_name=creator_name,
                platform=platform,
            )
        )
        self.session.flush()
        return True

    def list_all(self, limit: int = 100, offset: int = 0) -> list[FlyPattern]:
        """List patterns by name with pagination."""
        stmt = select(FlyPatternDB).order_by(FlyPatternDB.name).limit(limit).offset(offset)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(p) for p in result]

    def count(self) -> int:
        """Get total count of patterns."""
        stmt = select(func.count()).select_from(FlyPatternDB)
        return self.session.execute(stmt).scalar() or 0

    def _get_db_by_slug(self, slug: str) -> FlyPatternDB | None:
        stmt = select(FlyPatternDB).where(FlyPatternDB.slug == slug)
        return self.session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, db_item: FlyPatternDB) -> FlyPattern:
        """Convert database model to domain model."""
        return FlyPattern(
            id=UUID(db_item.id),
            slug=db_item.slug,
            name=db_item.name,
            category=db_item.category,
            difficulty=db_item.difficulty,
            water_type=db_item.water_type,
            description=db_item.description or "",
            origin=db_item.origin,
            confidence=db_item.confidence or 0.0,
            source_count=db_item.source_count or 0,
            materials=[link.material.name for link in db_item.materials],
            resource_urls=[r.url for r in db_item.resources],
            step_count=len(db_item.tying_steps),
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )
