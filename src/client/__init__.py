from src.client.advisor_client import AdvisorClient, IncompleteStreamError

__all__ = ["AdvisorClient", "IncompleteStreamError"]
