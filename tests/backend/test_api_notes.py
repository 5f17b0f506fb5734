import asyncio

from httpx import ASGITransport, AsyncClient
from fastapi import status

from src.notesynth.main import app
from src.notesynth.services.recommendations.backends import RecommendationContent
from src.notesynth.services.recommendations.service import recommendation_service


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _general_template_id(ac):
    response = await ac.get("/api/v1/templates/", params={"category": "general", "encounter_type": "initial"})
    assert response.status_code == status.HTTP_200_OK
    names = {t["name"]: t["template_id"] for t in response.json()}
    return names["General intake consultation"]


async def _intake(ac, patient_id="demo-patient-1"):
    response = await ac.post(
        "/api/v1/intake",
        json={
            "patient_id": patient_id,
            "category_id": "general",
            "provider_id": "dr-1",
            "provider_name": "Dr. Lee",
            "form_data": {"weight_kg": 95, "height_cm": 175, "conditions": ["hypertension"]},
        },
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["consultation_id"]


async def test_end_to_end_note_flow():
    async with _client() as ac:
        consultation_id = await _intake(ac)

        rec = await ac.post(f"/api/v1/consultations/{consultation_id}/recommendations")
        assert rec.status_code == status.HTTP_200_OK
        bundle = rec.json()
        assert bundle["assessment"].startswith("Findings consistent with")

        template_id = await _general_template_id(ac)
        processed = await ac.post(
            f"/api/v1/templates/{template_id}/process",
            json={"patient_id": "demo-patient-1", "consultation_id": consultation_id},
        )
        assert processed.status_code == status.HTTP_201_CREATED
        processed_body = processed.json()
        assert processed_body["recommendation_bundle_id"] == bundle["id"]
        assert processed_body["missing_placeholders"] == []

        created = await ac.post(
            "/api/v1/notes/",
            json={
                "consultation_id": consultation_id,
                "title": "Initial consultation",
                "processed_template_id": processed_body["id"],
            },
        )
        assert created.status_code == status.HTTP_201_CREATED
        note = created.json()
        assert note["status"] == "draft"

        edited = await ac.patch(
            f"/api/v1/notes/{note['id']}",
            json={"expected_version": 1, "follow_up_period": "3 months"},
        )
        assert edited.status_code == status.HTTP_200_OK
        assert edited.json()["version"] == 2

        finalized = await ac.post(f"/api/v1/notes/{note['id']}/finalize", json={"expected_version": 2})
        assert finalized.status_code == status.HTTP_200_OK
        assert finalized.json()["status"] == "finalized"

        again = await ac.post(f"/api/v1/notes/{note['id']}/finalize")
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.json()["error"] == "invalid_state"

        shared = await ac.post(f"/api/v1/notes/{note['id']}/share")
        assert shared.status_code == status.HTTP_200_OK
        assert shared.json()["note"]["is_shared_with_patient"] is True

        view = await ac.get(f"/api/v1/consultations/{consultation_id}/patient-view")
        assert view.status_code == status.HTTP_200_OK
        section_types = [s["section_type"] for s in view.json()["sections"]]
        assert section_types == ["header", "medications", "assessment"]
        assert "Dr. Lee" in view.json()["sections"][0]["content"]

        flow = await ac.get(f"/api/v1/consultations/{consultation_id}/flow")
        assert flow.status_code == status.HTTP_200_OK
        assert flow.json()["current_status"] == "note_shared"

        views = await ac.get(f"/api/v1/consultations/{consultation_id}/patient-views")
        assert len(views.json()) == 1


async def test_stale_version_returns_conflict():
    async with _client() as ac:
        consultation_id = await _intake(ac)
        template_id = await _general_template_id(ac)
        processed = await ac.post(
            f"/api/v1/templates/{template_id}/process",
            json={"patient_id": "demo-patient-1", "consultation_id": consultation_id},
        )
        created = await ac.post(
            "/api/v1/notes/",
            json={
                "consultation_id": consultation_id,
                "title": "Visit",
                "processed_template_id": processed.json()["id"],
            },
        )
        note_id = created.json()["id"]

        response = await ac.post(f"/api/v1/notes/{note_id}/finalize", json={"expected_version": 7})
    assert response.status_code == status.HTTP_409_CONFLICT
    body = response.json()
    assert body["error"] == "concurrent_modification"
    assert body["context"]["current_version"] == 1


async def test_required_placeholders_block_finalize_over_http():
    async with _client() as ac:
        consultation_id = await _intake(ac)
        template_id = await _general_template_id(ac)
        # No recommendations generated: AI placeholders stay pending.
        processed = await ac.post(
            f"/api/v1/templates/{template_id}/process",
            json={"patient_id": "demo-patient-1", "consultation_id": consultation_id},
        )
        assert "ASSESSMENT" in processed.json()["missing_placeholders"]
        created = await ac.post(
            "/api/v1/notes/",
            json={"consultation_id": consultation_id, "title": "Visit", "processed_template_id": processed.json()["id"]},
        )
        note_id = created.json()["id"]

        blocked = await ac.post(f"/api/v1/notes/{note_id}/finalize")
        assert blocked.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert blocked.json()["error"] == "validation_error"

        sections = {s["section_type"]: s["order_index"] for s in created.json()["sections"]}
        filled = await ac.patch(
            f"/api/v1/notes/{note_id}",
            json={
                "sections": {
                    str(sections["assessment"]): "Patient assessment: well controlled",
                    str(sections["plan"]): "Continue current medications.",
                }
            },
        )
        assert filled.status_code == status.HTTP_200_OK

        finalized = await ac.post(f"/api/v1/notes/{note_id}/finalize")
    assert finalized.status_code == status.HTTP_200_OK


async def test_unavailable_generator_is_reported_not_raised(monkeypatch):
    class HangingBackend:
        name = "hanging"

        async def generate(self, request):
            await asyncio.sleep(5)
            return RecommendationContent()

    monkeypatch.setattr(recommendation_service, "_backend", HangingBackend())
    monkeypatch.setattr(recommendation_service, "_timeout", 0.05)

    async with _client() as ac:
        consultation_id = await _intake(ac)
        response = await ac.post(f"/api/v1/consultations/{consultation_id}/recommendations")
        flow = await ac.get(f"/api/v1/consultations/{consultation_id}/flow")

    assert response.status_code == status.HTTP_202_ACCEPTED
    assert response.json() == {"status": "unavailable"}
    assert flow.json()["current_status"] == "ai_unavailable"


async def test_template_endpoints_and_error_mapping():
    async with _client() as ac:
        bad = await ac.post(
            "/api/v1/templates/",
            json={
                "name": "Broken",
                "category": "general",
                "sections": [
                    {"section_type": "x", "title": "X", "content": "x", "visibility_rule": "CONDITIONAL", "order_index": 0}
                ],
            },
        )
        assert bad.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert bad.json()["error"] == "validation_error"

        created = await ac.post(
            "/api/v1/templates/",
            json={
                "name": "Retiring soon",
                "category": "dermatology",
                "sections": [{"section_type": "plan", "title": "Plan", "content": "[PLAN]", "order_index": 0}],
            },
        )
        assert created.status_code == status.HTTP_201_CREATED
        template_id = created.json()["template_id"]

        fetched = await ac.get(f"/api/v1/templates/{template_id}")
        assert fetched.json()["version"] == 1

        retired = await ac.post(f"/api/v1/templates/{template_id}/deactivate")
        assert retired.status_code == status.HTTP_204_NO_CONTENT

        missing = await ac.get(f"/api/v1/templates/{template_id}")
        assert missing.status_code == status.HTTP_404_NOT_FOUND

        inactive = await ac.post(f"/api/v1/templates/{template_id}/process", json={"patient_id": "demo-patient-1"})
        assert inactive.status_code == status.HTTP_409_CONFLICT
        assert inactive.json()["error"] == "template_inactive"

        unknown_patient = await ac.post(
            f"/api/v1/templates/{template_id}/process",
            json={"patient_id": "nobody", "version_id": created.json()["id"]},
        )
        assert unknown_patient.status_code == status.HTTP_404_NOT_FOUND
        assert unknown_patient.json()["error"] == "invalid_context"

        note = await ac.get("/api/v1/notes/00000000-0000-0000-0000-000000000000")
        assert note.status_code == status.HTTP_404_NOT_FOUND
