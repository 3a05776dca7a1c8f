"""PromptSite - prompt-to-website generation orchestrator"""

__version__ = "1.0.0"
