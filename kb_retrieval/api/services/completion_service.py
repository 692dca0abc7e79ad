"""
Completion Service

Builds the language-model step that answers from stuffed knowledge base
context.
"""
import logging

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

logger = logging.getLogger(__name__)

QA_PROMPT_TEMPLATE = """Use the following pieces of context to answer the question at the end. If you don't know the answer, just say that you don't know, don't try to make up an answer.

{context}

Question: {question}
Helpful Answer:"""


def build_qa_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_template(QA_PROMPT_TEMPLATE)


def build_completion_chain(settings):
    """prompt | chat model | str parser, configured from application settings."""
    from langchain_openai import ChatOpenAI

    kwargs = {
        "model": settings.llm_model,
        "temperature": settings.llm_temperature,
        "api_key": settings.llm_api_key or "local",
    }
    if settings.llm_base_url:
        kwargs["base_url"] = settings.llm_base_url
    logger.info("Using completion model=%s base_url=%s", settings.llm_model, settings.llm_base_url or "default")
    return build_qa_prompt() | ChatOpenAI(**kwargs) | StrOutputParser()
