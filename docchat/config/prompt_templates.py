"""
DocChat - Prompt Templates & Fixed Responses
=============================================
Centralised prompt management for the chat engine.  All prompts and
user-facing canned messages live here so they can be versioned and
reviewed independently of application logic.

Exports
-------
CHAT_SYSTEM_PROMPT, RAG_SYSTEM_PROMPT, RAG_CONTEXT_TEMPLATE,
RAG_DOCUMENT_BLOCK, NO_CONTEXT_NOTICE, QUERY_REWRITE_PROMPT,
CATEGORY_NOT_FOUND_RESPONSE, SERVICE_UNAVAILABLE_RESPONSE,
ANALYSIS_HEADER, ANALYSIS_EMPTY, RAG_STATUS_TEMPLATE.
"""

# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPTS
# ══════════════════════════════════════════════════════════════════════

CHAT_SYSTEM_PROMPT: str = """You are a knowledgeable chat assistant who answers using the context provided and the user's question.
Follow these rules:
1. Prefer the supplied context when answering.
2. If the context is insufficient, say so explicitly and supplement it with your own knowledge.
3. Keep answers accurate, concise and helpful.
4. If you cannot determine the answer, say so honestly."""

RAG_SYSTEM_PROMPT: str = """You are a knowledge-base assistant that answers questions from the documents provided.
Answer strictly from the supplied context. If the context holds no relevant information, state clearly that the knowledge base does not contain the answer."""


# ══════════════════════════════════════════════════════════════════════
#  RAG PROMPT TEMPLATE
# ══════════════════════════════════════════════════════════════════════

RAG_DOCUMENT_BLOCK: str = "Document {index}:\n{content}"

RAG_CONTEXT_TEMPLATE: str = """Answer the question using the following related documents.

=== Related Documents ===
{context}

=== User Question ===
{question}

Answer from the documents above. If they do not contain the relevant information, say explicitly that the answer cannot be found in the provided documents."""

NO_CONTEXT_NOTICE: str = "(No documents in the knowledge base matched this question.)"


# ══════════════════════════════════════════════════════════════════════
#  QUERY REWRITE PROMPT
# ══════════════════════════════════════════════════════════════════════

QUERY_REWRITE_PROMPT: str = """Rewrite the user question below into a short query optimised for semantic search over a document knowledge base.
Remove filler words, keep every domain term, and do not answer the question.
Return only the rewritten query.

Question: {question}"""


# ══════════════════════════════════════════════════════════════════════
#  FIXED RESPONSES
# ══════════════════════════════════════════════════════════════════════

CATEGORY_NOT_FOUND_RESPONSE: str = "No documents related to your question were found in category '{category}'. Try rephrasing the question or choosing another category."

SERVICE_UNAVAILABLE_RESPONSE: str = "The assistant is temporarily unavailable. Please try again in a moment."


# ══════════════════════════════════════════════════════════════════════
#  DIAGNOSTICS
# ══════════════════════════════════════════════════════════════════════

ANALYSIS_HEADER: str = "Found {count} relevant document(s):\n\n"

ANALYSIS_EMPTY: str = "No documents related to the query were found."

RAG_STATUS_TEMPLATE: str = """=== RAG System Status ===
Total documents: {total_documents}
Supported file types: {supported_file_types}
{categories}RAG: enabled
Vector store: LanceDB ({table_name})
Embedding model: {embedding_model}"""
