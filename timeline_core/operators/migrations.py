"""
Versioned project schema migrations.

Each Migration upgrades a project TO its version. MigrationRunner applies the
pending ones in order on load, stamping schema_version after each step, and
never mutates the project it was given.

Version history:
    0 - zoom effects live on Recording.effects in source-space time
    1 - zoom effects live on Project.effects in timeline-space time
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Callable

from timeline_core.models.project_models import Clip, EffectType, Project
from timeline_core.operators.time_mapper import source_to_timeline


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    description: str
    migrate: Callable[[Project], Project]


class MigrationRunner:
    """Keeps migrations sorted by version and applies the pending ones."""

    def __init__(self):
        self._migrations: list[Migration] = []

    def register(self, migration: Migration) -> MigrationRunner:
        if any(m.version == migration.version for m in self._migrations):
            raise ValueError(f"Migration version {migration.version} already registered")
        self._migrations.append(migration)
        self._migrations.sort(key=lambda m: m.version)
        return self

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return tuple(self._migrations)

    def current_version(self, project: Project) -> int:
        return project.schema_version or 0

    def latest_version(self) -> int:
        if not self._migrations:
            return 0
        return self._migrations[-1].version

    def pending(self, project: Project) -> list[Migration]:
        current = self.current_version(project)
        return [m for m in self._migrations if m.version > current]

    def needs_migration(self, project: Project) -> bool:
        return self.current_version(project) < self.latest_version()

    def migrate_project(self, project: Project) -> Project:
        """
        Run every pending migration.

        Returns the project itself when nothing is pending, otherwise a new
        migrated project.
        """
        pending = self.pending(project)
        if not pending:
            return project

        start_version = self.current_version(project)
        migrated = deepcopy(project)
        for migration in pending:
            logger.info(
                "Running migration %s (v%d): %s",
                migration.name, migration.version, migration.description,
            )
            migrated = migration.migrate(migrated)
            migrated.schema_version = migration.version

        logger.info(
            "Project %s migrated from v%d to v%d",
            project.id, start_version, migrated.schema_version,
        )
        return migrated


# =============================================================================
# 001 - timeline-space zoom effects
# =============================================================================


def _clips_for_source_range(
    clips: list[Clip],
    recording_id: str,
    source_start: float,
    source_end: float,
) -> list[Clip]:
    return [
        clip
        for clip in clips
        if clip.recording_id == recording_id
        and clip.source_in < source_end
        and clip.source_out > source_start
    ]


def migrate_timeline_space_effects(project: Project) -> Project:
    """
    Move source-space zoom effects from recordings onto the timeline.

    Each legacy zoom effect is mapped through the earliest-starting clip that
    shows part of its source range. Effects no clip shows are dropped; effects
    whose id is already on the timeline are not added twice. Non-zoom legacy
    records stay on the recording.
    """
    migrated = deepcopy(project)
    clips = migrated.all_clips()
    existing_ids = {effect.id for effect in migrated.effects}
    moved = 0

    for recording in migrated.recordings:
        if not recording.effects:
            continue

        zoom_effects = [e for e in recording.effects if e.type == EffectType.ZOOM.value]
        other_effects = [e for e in recording.effects if e.type != EffectType.ZOOM.value]

        for effect in zoom_effects:
            candidates = _clips_for_source_range(
                clips, recording.id, effect.start_time, effect.end_time
            )
            if not candidates:
                logger.warning(
                    "Skipping orphaned zoom effect %s: no clip shows source [%.0f, %.0f) of %s",
                    effect.id, effect.start_time, effect.end_time, recording.id,
                )
                continue

            # min() keeps the first of equal starts
            primary = min(candidates, key=lambda c: c.start_time)
            start = source_to_timeline(effect.start_time, primary)
            end = source_to_timeline(effect.end_time, primary)

            if effect.id in existing_ids:
                logger.debug("Zoom effect %s already on the timeline", effect.id)
                continue

            migrated.effects.append(
                effect.model_copy(update={"start_time": start, "end_time": end})
            )
            existing_ids.add(effect.id)
            moved += 1
            logger.info(
                "Migrated zoom effect %s: source [%.0f, %.0f) -> timeline [%.0f, %.0f) via clip %s",
                effect.id, effect.start_time, effect.end_time, start, end, primary.id,
            )

        recording.effects = other_effects

    logger.info("Timeline-space effect migration moved %d zoom effect(s)", moved)
    return migrated


migration_001 = Migration(
    version=1,
    name="timeline_space_effects",
    description="Convert source-space zoom effects to timeline-space",
    migrate=migrate_timeline_space_effects,
)


migration_runner = MigrationRunner().register(migration_001)
