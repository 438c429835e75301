"""Card generation: capability contract, CLI generator and retrying pipeline."""

from deckgen.generation.cli_backend import CliCardGenerator
from deckgen.generation.contracts import CardGenerator, GenerationRequest, GenerationResponse
from deckgen.generation.pipeline import GenerationPipeline

__all__ = [
    "CardGenerator",
    "CliCardGenerator",
    "GenerationPipeline",
    "GenerationRequest",
    "GenerationResponse",
]
