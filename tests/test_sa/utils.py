# tests/test_sa/utils.py
from datetime import datetime, timedelta
from io import BytesIO
from typing import List, Dict, Any
from PIL import Image
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session


class FakeClock:
    """Controllable stand-in for the loan engine's clock"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_image(fmt: str = "PNG", size=(40, 60), color=(200, 30, 30)) -> bytes:
    """Render a small solid image in the given Pillow format"""
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class DBInspector:
    def __init__(self, session: Session):
        self.session = session
        self.engine = session.get_bind()
        self.inspector = inspect(self.engine)

    def get_table_info(self, table_name: str) -> Dict[str, Any]:
        """Get detailed information about a specific table"""
        return {
            'columns': self.inspector.get_columns(table_name),
            'primary_key': self.inspector.get_pk_constraint(table_name),
            'foreign_keys': self.inspector.get_foreign_keys(table_name),
            'indexes': self.inspector.get_indexes(table_name)
        }

    def get_all_tables(self) -> List[str]:
        return self.inspector.get_table_names()

    def count_rows(self, table_name: str) -> int:
        """Get row count for a table"""
        return self.session.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar()

    def get_index_sql(self, index_name: str) -> str:
        """Get CREATE INDEX SQL for an index"""
        result = self.session.execute(
            text("SELECT sql FROM sqlite_master WHERE type='index' AND name=:name"),
            {'name': index_name}
        )
        return result.scalar() or ''

    def describe_table(self, table_name: str) -> str:
        """Get a human-readable description of a table"""
        info = self.get_table_info(table_name)

        description = [f"\nTable: {table_name}", "\nColumns:"]
        for col in info['columns']:
            nullable = "NULL" if col['nullable'] else "NOT NULL"
            description.append(f"  - {col['name']}: {col['type']} {nullable}")

        if info['foreign_keys']:
            description.append("\nForeign Keys:")
            for fk in info['foreign_keys']:
                on_delete = (fk.get('options') or {}).get('ondelete', 'NO ACTION')
                description.append(
                    f"  - {', '.join(fk['constrained_columns'])} -> "
                    f"{fk['referred_table']}({', '.join(fk['referred_columns'])}) ON DELETE {on_delete}"
                )

        if info['indexes']:
            description.append("\nIndexes:")
            for idx in info['indexes']:
                unique = "UNIQUE " if idx['unique'] else ""
                description.append(f"  - {unique}INDEX {idx['name']} ON ({', '.join(idx['column_names'])})")

        description.append(f"\nRow Count: {self.count_rows(table_name)}")
        return "\n".join(description)


def print_table_schema(session: Session, table_name: str):
    """Print detailed schema information for a table"""
    print(DBInspector(session).describe_table(table_name))


def compare_model_to_db(session: Session, model_class) -> List[str]:
    """Compare SQLAlchemy model to actual database table"""
    differences = []
    db_info = DBInspector(session).get_table_info(model_class.__tablename__)

    model_columns = {c.key for c in inspect(model_class).columns}
    db_columns = {c['name'] for c in db_info['columns']}

    for col_name in sorted(model_columns - db_columns):
        differences.append(f"Column '{col_name}' exists in model but not in database")
    for col_name in sorted(db_columns - model_columns):
        differences.append(f"Column '{col_name}' exists in database but not in model")
    return differences


def foreign_key_ondelete(session: Session, table_name: str, column: str) -> str:
    """ON DELETE rule of the foreign key on the given column"""
    for fk in DBInspector(session).get_table_info(table_name)['foreign_keys']:
        if fk['constrained_columns'] == [column]:
            return ((fk.get('options') or {}).get('ondelete') or 'NO ACTION').upper()
    raise KeyError(f"No foreign key on {table_name}.{column}")
