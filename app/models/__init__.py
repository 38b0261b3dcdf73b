from app.models.api_integration import ApiIntegration, IntegrationPlatform  # noqa: F401
from app.models.conversation import (  # noqa: F401
    Conversation,
    ConversationEvent,
    ConversationEventType,
    DeliveryStatus,
    Platform,
)
from app.models.message import MediaType, Message, Sender, SenderRole  # noqa: F401
from app.models.saved_template import (  # noqa: F401
    SavedTemplate,
    TemplateScope,
    TemplateType,
)
