"""Database initialization and persistence layer."""

from fly_pattern_db.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
    run_migrations,
)
from fly_pattern_db.db.models import (
    Base,
    CanonicalMaterialAliasDB,
    CanonicalMaterialDB,
    StagedExtractionDB,
    StagedSourceDB,
)
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
from fly_pattern_db.db.repositories import (
    CanonicalMaterialRepository,
    StagedExtractionRepository,
    StagedSourceRepository,
    get_pipeline_stats,
)
from fly_pattern_db.db.repositories_catalog import FlyPatternRepository, MaterialRepository

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    "run_migrations",
    # Staging and registry models
    "Base",
    "StagedSourceDB",
    "StagedExtractionDB",
    "CanonicalMaterialDB",
    "CanonicalMaterialAliasDB",
    # Catalog models
    "FlyPatternDB",
    "MaterialDB",
    "FlyPatternMaterialDB",
    "VariationDB",
    "VariationOverrideDB",
    "MaterialSubstitutionDB",
    "TyingStepDB",
    "ResourceDB",
    # Repositories
    "StagedSourceRepository",
    "StagedExtractionRepository",
    "CanonicalMaterialRepository",
    "MaterialRepository",
    "FlyPatternRepository",
    "get_pipeline_stats",
]
