import sys

from intelboard.db import connect, set_role
from intelboard.schema import Role

con = connect()
tables = [r[0] for r in con.execute("SELECT table_name FROM information_schema.tables ORDER BY table_name").fetchall()]
con.close()

# usage: python scripts/init_db.py [executive_user_id ...]
for user_id in sys.argv[1:]:
    set_role(user_id, Role.EXECUTIVE)
    print(f"OK: {user_id} -> executive")

print(f"OK: tables ensured ({', '.join(tables)})")
