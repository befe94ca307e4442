"""Example of loading a migration configuration and printing its stage plan."""

from pathlib import Path

from sql_migration_pipeline.adapters.collaborators import Collaborators
from sql_migration_pipeline.core.config import MigrationConfig, load_from_file
from sql_migration_pipeline.pipeline.definition import build_migration_pipeline, find_missing_parameters


def main() -> None:
    """Load and print the migration configuration from a HOCON file."""
    config_path = str(Path(__file__).parent / "migration.conf")
    config = load_from_file(config_path, MigrationConfig)

    print(f"Migration: {config.name}")
    print(f"Work dir:  {config.work_path}")
    print(f"Staging:   {config.staging.server}/{config.staging.database}")
    print(f"Target:    {config.target.server}/{config.target.database}")

    missing = find_missing_parameters(config)
    if missing:
        print("\nMissing parameters:")
        for entry in missing:
            print(f"  - {entry}")
        return

    # Building the pipeline makes no external calls.
    definition = build_migration_pipeline(config, Collaborators.from_config(config))
    print(f"\nStages ({len(definition)}):")
    for i, stage in enumerate(definition.stages, 1):
        print(f"  {i}. {stage.name}: {stage.action.describe()}")
        print(f"     timeout {stage.timeout_seconds:.0f}s, up to {stage.max_attempts} attempt(s)")


if __name__ == "__main__":
    main()
