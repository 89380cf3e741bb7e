"""Migration scripts produce the schema the ORM models expect."""

import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from professorprep.kernel.models import Base

VERSIONS_DIR = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _load_migrations():
    modules = []
    for path in sorted(VERSIONS_DIR.glob("*.py")):
        spec = importlib.util.spec_from_file_location(path.stem, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        modules.append(module)
    return modules


class TestMigrations:
    """Apply every revision in order against an empty SQLite database."""

    def test_revisions_form_a_chain(self):
        modules = _load_migrations()
        assert modules
        assert modules[0].down_revision is None
        for prev, nxt in zip(modules, modules[1:]):
            assert nxt.down_revision == prev.revision

    def test_upgrade_matches_models(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
        with engine.begin() as conn:
            ctx = MigrationContext.configure(conn)
            with Operations.context(ctx):
                for module in _load_migrations():
                    module.upgrade()

        inspector = inspect(engine)
        for table in Base.metadata.sorted_tables:
            assert inspector.has_table(table.name)
            migrated = {c["name"] for c in inspector.get_columns(table.name)}
            assert migrated == {c.name for c in table.columns}, table.name

        uniques = {u["name"] for u in inspector.get_unique_constraints("objective_mastery")}
        assert "uq_objective_mastery_student_objective" in uniques
        engine.dispose()

    def test_downgrade_removes_tables(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'downgraded.db'}")
        modules = _load_migrations()
        with engine.begin() as conn:
            ctx = MigrationContext.configure(conn)
            with Operations.context(ctx):
                for module in modules:
                    module.upgrade()
                for module in reversed(modules):
                    module.downgrade()

        assert inspect(engine).get_table_names() == []
        engine.dispose()
