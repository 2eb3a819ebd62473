"""Prompt templates for retrieval intent classification."""

INTENT_CLASSIFICATION_PROMPT = """Does this user message need to search the knowledge base (RAG)?

Recent conversation:
{history}

Current message: "{message}"

Respond ONLY with "YES" or "NO":

YES - If the message is:
- A NEW question requiring knowledge base lookup
- Asking "who", "what", "where" about specific entities, people, or concepts
- Asking "how to" do something
- Requesting code examples or documentation
- Looking up API/library/feature information
- Asking about features, configuration, or implementation details
- Asking about people, projects, or domain-specific concepts
- Any factual query that might be in the knowledge base

NO - If the message is:
- A follow-up clarification ("explain more", "what about X?")
- Correcting or critiquing the AI's previous answer
- Casual conversation ("yes", "no", "thanks", "ok")
- Requesting modification of the previous response
- Discussing something already covered in recent messages
- Asking the AI to correct/update its previous answer

Answer:"""

NO_HISTORY = "No previous conversation"
