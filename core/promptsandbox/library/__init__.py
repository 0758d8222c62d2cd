from promptsandbox.library.credentials import Credential, credentials_manager
from promptsandbox.library.llm import CompletionService, LangChainCompletionService

__all__ = ["CompletionService", "Credential", "LangChainCompletionService", "credentials_manager"]
