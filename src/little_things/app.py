import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .errors import AppError, ValidationError, handle_error
from .location import LocationResolver
from .logging_config import setup_logging
from .models import Memory, PartnerProfile
from .service import DataService, create_data_service
from .settings import Settings, settings as default_settings
from .suggestions import SuggestionService

logger = logging.getLogger(__name__)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="invalid json") from None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="invalid json")
    return body


def _parse_memories(raw: Any) -> List[Memory]:
    if not isinstance(raw, list):
        return []
    try:
        return [Memory.model_validate(item) for item in raw]
    except PydanticValidationError:
        raise HTTPException(status_code=400, detail="invalid memories") from None


def create_app(
    config: Optional[Settings] = None,
    *,
    data_service: Optional[DataService] = None,
    suggestion_service: Optional[SuggestionService] = None,
    location_resolver: Optional[LocationResolver] = None,
) -> FastAPI:
    config = config or default_settings
    app = FastAPI(title="little-things-data")
    app.state.data_service = data_service or create_data_service(config)
    app.state.suggestions = suggestion_service or SuggestionService(config.openai, config.suggestions)
    app.state.location = location_resolver or LocationResolver(config.location)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.suggestions.close()
        await app.state.location.close()
        await app.state.data_service.close()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": "little-things-data",
            "remote": app.state.data_service.router.remote is not None,
            "suggestions": app.state.suggestions.configured,
        }

    @app.post("/api/users")
    async def ensure_user(request: Request) -> JSONResponse:
        body = await _json_body(request)
        user_id = body.get("userId")
        if not isinstance(user_id, str) or not user_id.strip():
            return JSONResponse(status_code=400, content={"error": "User ID is required"})

        try:
            created = await app.state.data_service.ensure_user(user_id, body.get("email"))
        except AppError as exc:
            logger.error("api.users.failed", extra={"user_id": user_id, "error": exc.message})
            return JSONResponse(status_code=500, content={"error": f"Failed to create user: {exc.message}"})

        message = "User created successfully" if created else "User already exists"
        return JSONResponse(content={"success": True, "message": message})

    @app.post("/api/ai-suggestions")
    async def ai_suggestions(request: Request) -> JSONResponse:
        body = await _json_body(request)
        memories = _parse_memories(body.get("memories"))

        profile_raw = body.get("partnerProfile") or {}
        try:
            profile = PartnerProfile.model_validate(profile_raw)
        except PydanticValidationError:
            raise HTTPException(status_code=400, detail="invalid partnerProfile") from None

        location = body.get("userLocation")
        if not location and body.get("latitude") is not None and body.get("longitude") is not None:
            try:
                location = await app.state.location.describe(float(body["latitude"]), float(body["longitude"]))
            except (TypeError, ValueError):
                location = None

        try:
            result = await app.state.suggestions.generate(memories, profile, location)
        except ValidationError as exc:
            return JSONResponse(status_code=400, content={"error": exc.user_message})
        except Exception as exc:
            error = handle_error(exc, "ai-suggestions")
            return JSONResponse(
                status_code=500,
                content={"error": error.user_message, "details": error.message},
            )

        return JSONResponse(
            content={
                "success": True,
                "suggestions": [s.to_storage() for s in result.suggestions],
                "analysis": result.analysis.to_storage(),
                "patterns": result.patterns.model_dump(by_alias=True),
            }
        )

    return app


def main() -> None:
    import uvicorn

    setup_logging(default_settings)
    service_cfg = default_settings.service
    uvicorn.run(
        create_app(default_settings),
        host=service_cfg.host,
        port=service_cfg.port,
        log_level=service_cfg.log_level.lower(),
    )


if __name__ == "__main__":
    main()
