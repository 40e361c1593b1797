"""Centralized dependency injection container."""
from dependency_injector import containers, providers

from core.settings import SETTINGS
from infra.resources import DatabaseResource


class InfrastructureContainer(containers.DeclarativeContainer):
    """Infrastructure layer dependencies."""

    config = providers.Configuration()
    settings = providers.Object(SETTINGS)

    # Database (only initialized when the SQL conversation store is selected)
    database = providers.Resource(
        DatabaseResource,
        database_url=str(SETTINGS.DATABASE.DATABASE_URL),
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Application services - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    # Conversation store: one instance per process, selected by configuration
    conversation_store = providers.Selector(
        providers.Object(SETTINGS.CHAT.CHAT_STORE_BACKEND),
        memory=providers.Singleton(
            "api.features.conversation.store.InMemoryConversationStore",
        ),
        sql=providers.Singleton(
            "api.features.conversation.store.SqlConversationStore",
            database=infrastructure.database,
        ),
    )

    context_builder = providers.Singleton(
        "api.features.conversation.context.ContextBuilder",
        max_turns=SETTINGS.CHAT.CONTEXT_MAX_TURNS,
        max_chars=SETTINGS.CHAT.CONTEXT_MAX_CHARS,
        preamble=SETTINGS.CHAT.SYSTEM_PREAMBLE,
    )

    # Local medical model, or the offline responder when LOCAL_LLM_ENABLED=false
    inference_backend = providers.Selector(
        providers.Object(SETTINGS.INFERENCE.backend_name),
        local=providers.Singleton(
            "api.features.conversation.gateway.LocalModelBackend",
            url=SETTINGS.INFERENCE.LOCAL_LLM_URL,
            model=SETTINGS.INFERENCE.LOCAL_LLM_MODEL,
            timeout_seconds=SETTINGS.INFERENCE.LOCAL_LLM_TIMEOUT_SECONDS,
            temperature=SETTINGS.INFERENCE.TEMPERATURE,
            top_p=SETTINGS.INFERENCE.TOP_P,
            max_tokens=SETTINGS.INFERENCE.MAX_TOKENS,
        ),
        rules=providers.Singleton(
            "api.features.conversation.gateway.RuleBasedBackend",
        ),
    )

    inference_gateway = providers.Singleton(
        "api.features.conversation.gateway.InferenceGateway",
        backend=inference_backend,
        timeout_seconds=SETTINGS.INFERENCE.LOCAL_LLM_TIMEOUT_SECONDS,
    )

    conversation_manager = providers.Singleton(
        "api.features.conversation.service.ConversationManager",
        store=conversation_store,
        context_builder=context_builder,
        gateway=inference_gateway,
        max_message_chars=SETTINGS.CHAT.MAX_MESSAGE_CHARS,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    conversation_controller = providers.Factory(
        "api.features.conversation.controller.ConversationController",
        manager=services.conversation_manager,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.main",
            "api.features.conversation.router",
        ]
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)
