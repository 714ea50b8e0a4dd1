from datetime import datetime
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shortcraft.config import Settings, load_config
from shortcraft.errors import ShortcraftError
from shortcraft.pipeline.schemas import StageResult
from shortcraft.pipeline.service import PipelineService, TextGenerator
from shortcraft.quota.limiter import QuotaLimiter
from shortcraft.store.store import ArtifactStore
from shortcraft.utils.llm_client import ChatModelGenerator
from shortcraft.utils.logging_setup import configure_logging, setup_logger

logger = setup_logger(__name__)


class CreateProjectRequest(BaseModel):
    title: str = ""
    idea: str = ""


class GenerateRequest(BaseModel):
    project_id: str
    locale: str = "en"


class ImagePromptsRequest(GenerateRequest):
    character: Optional[str] = None


class VideoPromptsRequest(GenerateRequest):
    platform_preset: Optional[str] = None
    style_preset: Optional[str] = None
    duration_preset: Optional[str] = None
    tool_preset: Optional[str] = None


class EditingScriptRequest(GenerateRequest):
    mode: str = "DYNAMIC"
    production_mode: Optional[str] = None
    max_video_scenes: int = 2
    video_placement_strategy: str = "SMART"
    video_scene_cost: Optional[float] = None


class SelectHookRequest(BaseModel):
    project_id: str
    hook: str
    language: str = "en"


class TranslateRequest(BaseModel):
    project_id: str
    kind: str
    target_language: str
    source_language: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str


def create_app(settings: Optional[Settings] = None, generator: Optional[TextGenerator] = None) -> FastAPI:
    """
    Build the HTTP app. Settings are loaded once here and shared by all requests;
    each request opens its own store connection.
    """
    settings = settings or load_config()
    configure_logging(
        log_file=settings.log_file or None,
        level=settings.log_level,
    )
    generator = generator or ChatModelGenerator(settings.llm)

    app = FastAPI(title="ShortCraft API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_service() -> Iterator[PipelineService]:
        store = ArtifactStore.open(settings.database_path)
        try:
            yield PipelineService(store, generator, settings, QuotaLimiter(settings.quota, store))
        finally:
            store.close()

    @app.exception_handler(ShortcraftError)
    async def shortcraft_error_handler(request: Request, exc: ShortcraftError):
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": str(exc), "code": "BAD_REQUEST"})

    @app.post("/projects")
    def create_project(
        body: CreateProjectRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.create_project(x_account_email, title=body.title, idea=body.idea)

    @app.get("/projects")
    def list_projects(
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return {"projects": service.list_projects(x_account_email)}

    @app.post("/generate/hooks", response_model=StageResult)
    def generate_hooks(
        body: GenerateRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.generate_hooks(x_account_email, body.project_id, body.locale)

    @app.post("/generate/storyboard", response_model=StageResult)
    def generate_storyboard(
        body: GenerateRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.generate_storyboard(x_account_email, body.project_id, body.locale)

    @app.post("/generate/image-prompts", response_model=StageResult)
    def generate_image_prompts(
        body: ImagePromptsRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.generate_image_prompts(x_account_email, body.project_id, body.locale, character=body.character)

    @app.post("/generate/video-prompts", response_model=StageResult)
    def generate_video_prompts(
        body: VideoPromptsRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.generate_video_prompts(
            x_account_email,
            body.project_id,
            body.locale,
            platform_preset=body.platform_preset,
            style_preset=body.style_preset,
            duration_preset=body.duration_preset,
            tool_preset=body.tool_preset,
        )

    @app.post("/generate/editing-script", response_model=StageResult)
    def generate_editing_script(
        body: EditingScriptRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.generate_editing_script(
            x_account_email,
            body.project_id,
            body.locale,
            mode=body.mode,
            production_mode=body.production_mode,
            max_video_scenes=body.max_video_scenes,
            video_placement_strategy=body.video_placement_strategy,
            video_scene_cost=body.video_scene_cost,
        )

    @app.post("/generate/translate-output", response_model=StageResult)
    def translate_output(
        body: TranslateRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.translate_output(
            x_account_email,
            body.project_id,
            body.kind,
            body.target_language,
            source_language=body.source_language,
        )

    @app.post("/projects/select-hook", response_model=StageResult)
    def select_hook(
        body: SelectHookRequest,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.select_hook(x_account_email, body.project_id, body.hook, body.language)

    @app.get("/projects/{project_id}/outputs/{kind}", response_model=StageResult)
    def get_output(
        project_id: str,
        kind: str,
        locale: str = "en",
        tool_format: Optional[str] = Query(default=None, alias="format"),
        variant: Optional[str] = None,
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        return service.get_output(
            x_account_email, project_id, locale, kind, tool_format=tool_format, tool_variant=variant
        )

    @app.get("/quota")
    def quota(
        x_account_email: Optional[str] = Header(default=None),
        service: PipelineService = Depends(get_service),
    ):
        account = service.resolve_account(x_account_email)
        return service.limiter.usage(account["account_id"], account["email"]).to_dict()

    @app.get("/health")
    def health():
        return HealthResponse(status="healthy", timestamp=datetime.now().isoformat())

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
