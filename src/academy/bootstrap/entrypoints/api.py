from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dishka import AsyncContainer
from dishka.integrations.fastapi import setup_dishka
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from academy.bootstrap.configs import load_settings
from academy.bootstrap.ioc.containers import fastapi_container
from academy.infrastructure.log.main import configure_logging
from academy.presentation.api.middlewares.setup import setup_middlewares
from academy.presentation.api.root import root_router
from academy.presentation.exceptions import setup_exception_handlers


def init_routers(app: FastAPI) -> None:
    app.include_router(root_router)
    setup_exception_handlers(app)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    yield
    await app.state.dishka_container.close()


def build_app(container: AsyncContainer) -> FastAPI:
    app = FastAPI(
        title="Academy",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    init_routers(app)
    setup_middlewares(app)
    setup_dishka(container=container, app=app)
    return app


def create_app() -> FastAPI:
    load_dotenv()
    config = load_settings()
    configure_logging(config.logging.level)
    return build_app(fastapi_container(config))
