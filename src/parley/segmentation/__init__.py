"""Conversation segmentation.

Splits a session's message stream into topic-scoped conversations linked
by ``previous_convo_id``, classifies topic shifts and summarizes closed
conversations in the background.
"""

from parley.segmentation.chain import build_chain_context, format_chain, get_chain
from parley.segmentation.classifier import Classification, TopicClassifier
from parley.segmentation.manager import (
    SegmentationManager,
    detect_new_conversation_intent,
    should_classify,
)
from parley.segmentation.summarizer import ConversationSummarizer

__all__ = [
    "Classification",
    "ConversationSummarizer",
    "SegmentationManager",
    "TopicClassifier",
    "build_chain_context",
    "detect_new_conversation_intent",
    "format_chain",
    "get_chain",
    "should_classify",
]
