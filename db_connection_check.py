from sqlalchemy import select

from autoservice.config import settings
from autoservice.db import SessionLocal, check_connection
from autoservice.models import Role


def main() -> None:
    print(f"DATABASE_URL={settings.database_url}")
    if not check_connection():
        print("DB connection FAILED")
        return
    print("DB connection OK")
    with SessionLocal() as db:
        role_id = db.scalar(select(Role.id).where(Role.name == settings.manager_role_name))
    if role_id is None:
        print(f"manager role {settings.manager_role_name!r} is missing, manager registration will be refused")
    else:
        print(f"manager role {settings.manager_role_name!r} has id {role_id}")


if __name__ == "__main__":
    main()
