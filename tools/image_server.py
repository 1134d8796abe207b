# =============================================================================
# tools/image_server.py  -  EverArt image generation MCP server
# =============================================================================
#
# TOOLS:
#   generate_image              txt2img through EverArt, returns the image URL
#   get_everart_aztp_identity   this server's AZTP identity
#
# RESOURCES:
#   everart://images            listing placeholder for generated images
#
# RUNNING THIS SERVER:
#   python main.py image      (or: python -m tools.image_server)
# =============================================================================

import contextlib
import sys
from typing import Protocol

from fastmcp import FastMCP
from pydantic import BaseModel, Field

from core.config import EverArtSettings
from core.dispatcher import Dispatcher, ToolRoute, identity_route
from core.identity import IdentityContext
from core.image_generation import AVAILABLE_MODELS, EverArtClient
from core.models import HandlerResult, ToolDescriptor, ToolSuccess, text_envelope
from core.registry import ToolRegistry
from tools.common import log_status, run_server

SERVER_NAME = "everart"

GENERATE_TOOL = "generate_image"
IDENTITY_TOOL = "get_everart_aztp_identity"

IMAGES_RESOURCE_URI = "everart://images"

_MODEL_LIST = "\n".join(f"- {model_id}: {label}" for model_id, label in AVAILABLE_MODELS.items())

TOOLS = ToolRegistry([
    ToolDescriptor(
        name=GENERATE_TOOL,
        description=(
            "Generate images using EverArt Models and returns a link to view the "
            "generated image. Available models:\n"
            f"{_MODEL_LIST}\n"
            "\nThe response will contain a direct link to view the generated image."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "Text description of desired image"},
                "model": {
                    "type": "string",
                    "description": (
                        "Model ID (5000:FLUX1.1, 9000:FLUX1.1-ultra, 6000:SD3.5, "
                        "7000:Recraft-Real, 8000:Recraft-Vector)"
                    ),
                    "default": "5000",
                },
                "image_count": {
                    "type": "number",
                    "description": "Number of images to generate",
                    "default": 1,
                },
            },
            "required": ["prompt"],
        },
    ),
    ToolDescriptor(
        name=IDENTITY_TOOL,
        description=(
            "Get AZTP identity of the everart MCP server. This is used to secure the "
            "connection between the everart MCP server and the AZTP server."
        ),
        input_schema={"type": "object", "properties": {}},
    ),
])


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, model: str = "5000", image_count: int = 1) -> str:
        ...


class GenerateImageArguments(BaseModel):
    prompt: str = Field(min_length=1)
    model: str = "5000"
    image_count: int = Field(default=1, ge=1)


class IdentityArguments(BaseModel):
    pass


def generation_route(generator: ImageGenerator) -> ToolRoute:
    async def handle(arguments: GenerateImageArguments) -> HandlerResult:
        image_url = await generator.generate(arguments.prompt, arguments.model, arguments.image_count)
        log_status(f"Image ready at {image_url}")
        return ToolSuccess(text_envelope(
            "Image generated successfully!\n\n"
            "Generation details:\n"
            f"- Model: {arguments.model}\n"
            f'- Prompt: "{arguments.prompt}"\n'
            f"- Image URL: {image_url}\n\n"
            "Open the URL above to view the image."
        ))

    return ToolRoute(arguments_model=GenerateImageArguments, handler=handle)


def build_dispatcher(generator: ImageGenerator, context: IdentityContext) -> Dispatcher:
    return Dispatcher(TOOLS, {
        GENERATE_TOOL: generation_route(generator),
        IDENTITY_TOOL: identity_route(context, IdentityArguments),
    })


def register_resources(app: FastMCP) -> None:
    @app.resource(IMAGES_RESOURCE_URI, name="Generated Images", mime_type="image/png")
    def generated_images() -> bytes:
        # Listing only; generated images are served from their EverArt URLs.
        return b""


async def open_dispatcher(context: IdentityContext, resources: contextlib.AsyncExitStack) -> Dispatcher:
    settings = EverArtSettings.from_env()
    client = await resources.enter_async_context(EverArtClient(settings.api_key))
    return build_dispatcher(client, context)


def main() -> int:
    return run_server(SERVER_NAME, open_dispatcher, configure_app=register_resources)


if __name__ == "__main__":
    sys.exit(main())
