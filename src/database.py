# Configuración de base de datos usando SQLAlchemy.
#
# ESTRATEGIA DE BASE DE DATOS:
# - DESARROLLO LOCAL: SQLite local (aune.db) por defecto
# - PRODUCCIÓN: Postgres gestionado (Supabase) si DATABASE_URL está configurada
#
# Para desarrollo local contra el Postgres de Supabase:
#   Configura DATABASE_URL en .env con la connection string del proyecto

import os
from pathlib import Path
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base

# Cargar variables de entorno desde .env (solo en desarrollo local)
backend_dir = Path(__file__).parent.parent
env_path = backend_dir / ".env"
load_dotenv(dotenv_path=env_path)

env_database_url = os.getenv("DATABASE_URL", "").strip()

IS_POSTGRES = bool(env_database_url) and not env_database_url.startswith("sqlite")

if IS_POSTGRES:
    DATABASE_URL = env_database_url
    print("[INFO] Usando PostgreSQL externa (Supabase/configurada)")
else:
    DATABASE_URL = "sqlite:///./aune.db"
    print("[INFO] Usando SQLite local para desarrollo")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def fix_sequences():
    """
    Arregla las secuencias de PostgreSQL para que usen max(id)+1.
    Evita "duplicate key value violates unique constraint" cuando las filas
    se cargaron a mano desde el panel de Supabase.

    Solo aplica a PostgreSQL - SQLite no tiene este problema.
    """
    if not IS_POSTGRES:
        return

    print("[INFO] Verificando y arreglando secuencias de PostgreSQL...")

    tables_to_fix = ["visit_logs", "home_videos"]

    try:
        with engine.connect() as conn:
            for table in tables_to_fix:
                try:
                    exists = conn.execute(
                        text(
                            "SELECT EXISTS (SELECT FROM information_schema.tables "
                            "WHERE table_name = :table)"
                        ),
                        {"table": table},
                    ).scalar()

                    if not exists:
                        continue

                    conn.execute(text(f"""
                        SELECT setval(
                            pg_get_serial_sequence('{table}', 'id'),
                            COALESCE((SELECT MAX(id) FROM {table}), 0) + 1,
                            false
                        )
                    """))
                    conn.commit()
                    print(f"[INFO] Secuencia de '{table}' sincronizada correctamente")

                except Exception as e:
                    print(f"[WARN] No se pudo arreglar secuencia de '{table}': {e}")

    except Exception as e:
        print(f"[WARN] Error al arreglar secuencias: {e}")


def get_db():
  """
  Dependencia para inyectar la sesión de DB en los endpoints de FastAPI.
  """
  db = SessionLocal()
  try:
      yield db
  finally:
      db.close()
