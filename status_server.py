"""
Read-only status surface over the notification and cycle logs.
GET /api/notifications returns last notifications, GET /api/cycles the last cycle stats,
GET /health the newest of both; GET / serves a simple HTML page.
Run it next to the monitor: python status_server.py
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse

from notification_log import CYCLES_LOG_PATH, LOG_PATH, read_last_cycles, read_last_notifications

INDEX_HTML = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Governance proposal notifications</title>
<style>
  body { font-family: system-ui; max-width: 900px; margin: 1rem auto; padding: 0 1rem; }
  table { width: 100%; border-collapse: collapse; }
  th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid #eee; vertical-align: top; }
  th { background: #f5f5f5; }
  .ts { white-space: nowrap; }
  .msg { white-space: pre-wrap; }
</style>
</head>
<body>
  <h1>Governance proposal notifications (last 24h / 100KB)</h1>
  <p><a href="/api/notifications">JSON</a> &middot; <a href="/api/cycles">cycles</a></p>
  <table>
    <thead><tr><th class="ts">Time</th><th>DAO</th><th class="msg">Message</th></tr></thead>
    <tbody id="tbody"></tbody>
  </table>
  <script>
    const esc = s => (s || '').replace(/&/g, '&amp;').replace(/</g, '&lt;');
    fetch('/api/notifications?limit=200')
      .then(r => r.json())
      .then(d => {
        const tbody = document.getElementById('tbody');
        d.notifications.forEach(n => {
          const tr = document.createElement('tr');
          tr.innerHTML = '<td class="ts">' + esc(n.created_at) + '</td><td>' + esc(n.source_name) + '</td><td class="msg">' + esc(n.message) + '</td>';
          tbody.appendChild(tr);
        });
        if (d.notifications.length === 0) tbody.innerHTML = '<tr><td colspan="3">No notifications yet.</td></tr>';
      })
      .catch(e => { document.getElementById('tbody').innerHTML = '<tr><td colspan="3">Error loading notifications.</td></tr>'; });
  </script>
</body>
</html>"""


def create_app(log_path: str = LOG_PATH, cycles_path: str = CYCLES_LOG_PATH) -> FastAPI:
    app = FastAPI(title="govwatch")

    @app.get("/api/notifications")
    async def get_notifications(limit: int = 200) -> JSONResponse:
        """Return the last `limit` logged notifications (newest first)."""
        notifications = read_last_notifications(limit=limit, path=log_path)
        return JSONResponse(content={"notifications": notifications, "count": len(notifications)})

    @app.get("/api/cycles")
    async def get_cycles(limit: int = 50) -> JSONResponse:
        """Return the last `limit` cycle summaries (newest first)."""
        cycles = read_last_cycles(limit=limit, path=cycles_path)
        return JSONResponse(content={"cycles": cycles, "count": len(cycles)})

    @app.get("/health")
    async def health() -> JSONResponse:
        latest = read_last_notifications(limit=1, path=log_path)
        last_cycle = read_last_cycles(limit=1, path=cycles_path)
        return JSONResponse(
            content={
                "status": "ok",
                "last_notification_at": latest[0].get("created_at") if latest else None,
                "last_cycle": last_cycle[0] if last_cycle else None,
            }
        )

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(content=INDEX_HTML)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
