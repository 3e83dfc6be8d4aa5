from workmate.services.llm_service import (
    LanguageModel, OpenAILanguageModel, AnthropicLanguageModel, build_language_model,
)
from workmate.services.history_store import ConversationHistoryStore, ConversationLocks
from workmate.services.knowledge_base import KnowledgeBaseAssembler, render_knowledge_base
from workmate.services.pilot_policy import PilotDecision, decide, resolve_mode
from workmate.services.usage_metering import UsageMeter
from workmate.services.batch_orchestrator import (
    RetryPolicy, batch_process, batch_process_streaming, iter_batch_events, is_rate_limit_error,
)
from workmate.services.response_generator import GenerationResult, ResponseGenerator, summarize_many
from workmate.services.web_fetch import CrawledPage, WebFetcher
from workmate.services.training_service import CrawlResult, TrainingService
from workmate.services.notification_service import Notifier, ResendNotifier
from workmate.services.inbound_service import InboundResult, InboundService
from workmate.services.voice_service import VoiceService, VoiceTurn

__all__ = [
    # Language model
    "LanguageModel",
    "OpenAILanguageModel",
    "AnthropicLanguageModel",
    "build_language_model",
    # Response pipeline
    "ConversationHistoryStore",
    "ConversationLocks",
    "KnowledgeBaseAssembler",
    "render_knowledge_base",
    "PilotDecision",
    "decide",
    "resolve_mode",
    "UsageMeter",
    "GenerationResult",
    "ResponseGenerator",
    "summarize_many",
    # Batch work
    "RetryPolicy",
    "batch_process",
    "batch_process_streaming",
    "iter_batch_events",
    "is_rate_limit_error",
    # Training
    "CrawledPage",
    "WebFetcher",
    "CrawlResult",
    "TrainingService",
    # Channels
    "Notifier",
    "ResendNotifier",
    "InboundResult",
    "InboundService",
    "VoiceService",
    "VoiceTurn",
]
