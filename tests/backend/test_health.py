from httpx import ASGITransport, AsyncClient
from fastapi import status

from src.notesynth.main import app


async def test_root_health_check():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


async def test_v1_health_check():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok", "version": "v1"}


async def test_system_info_reports_backends():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/system/info")
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["recommendation_backend"] == "demo"
    assert body["note_repository"] == "InMemoryProviderNoteRepository"
