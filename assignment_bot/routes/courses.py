import json

from fastapi import APIRouter

from assignment_bot.database import get_async_conn

router = APIRouter(prefix="/api", tags=["courses"])


@router.get("/courses")
async def list_courses() -> list[dict]:
    conn = await get_async_conn()
    try:
        rows = await conn.execute("SELECT id, name, aliases_json FROM courses ORDER BY name")
        return [
            {"id": row["id"], "name": row["name"], "aliases": json.loads(row["aliases_json"])}
            for row in await rows.fetchall()
        ]
    finally:
        await conn.close()
