"""
Labelled example phrasings for the embedding intent classifier.

Every example is embedded once per process (one batch call) and each
incoming message is matched to its nearest example by cosine similarity.
High-intent labels (contact / viewing / interested) open the lead capture
flow; property_search routes to the property directory.
"""

from realty_chat.models.intent import IntentDefinition

INTENT_EXAMPLES: list[IntentDefinition] = [
    IntentDefinition(
        intent="contact",
        examples=[
            "I want to talk to an agent",
            "Can an agent contact me?",
            "Please call me back",
            "How can I reach your sales team?",
            "I'd like someone to get in touch with me",
            "Give me the agent's phone number",
        ],
    ),
    IntentDefinition(
        intent="viewing",
        examples=[
            "I want to schedule a viewing",
            "Can I visit the apartment this weekend?",
            "Book a tour of the villa",
            "When can I see the property?",
            "Arrange a site visit for me",
        ],
    ),
    IntentDefinition(
        intent="interested",
        examples=[
            "I'm interested in this property",
            "I want to rent this one",
            "I'd like to buy that villa",
            "This is exactly what I'm looking for, what's next?",
            "How do I reserve this apartment?",
        ],
    ),
    IntentDefinition(
        intent="property_search",
        examples=[
            "Show me 2 bedroom apartments in Lusail",
            "Any villas for rent under 15000?",
            "I'm looking for an apartment in The Pearl",
            "Find me a townhouse for sale",
            "List featured properties in West Bay",
            "Do you have offices for rent in Msheireb?",
        ],
    ),
    IntentDefinition(
        intent="general",
        examples=[
            "What documents do I need to rent in Qatar?",
            "How does the buying process work?",
            "What are your agency fees?",
            "Can foreigners own property here?",
            "What is the service charge?",
        ],
    ),
    IntentDefinition(
        intent="greeting",
        examples=[
            "Hello",
            "Hi there",
            "Good morning",
            "مرحبا",
        ],
    ),
]
