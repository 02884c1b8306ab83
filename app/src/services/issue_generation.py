"""
Issue generation pipeline.

The content generator itself (an LLM call) sits behind the ContentGenerator
port; this module only drives the issue through
generating -> draft | failed around it.
"""

import logging
from abc import ABC, abstractmethod

import logfire

from src.core.exceptions import NotFoundError, PreconditionFailedError
from src.models.issue import Issue, IssueStatus
from src.models.topic import Topic
from src.repositories.unit_of_work import AbstractUnitOfWork
from src.schemas.newsletter import GeneratedNewsletter
from src.services.issue_status_machine import validate_status_transition

logger = logging.getLogger(__name__)


class ContentGenerator(ABC):
    @abstractmethod
    async def generate(self, topic: Topic) -> GeneratedNewsletter:
        raise NotImplementedError


class IssueGenerationService:
    def __init__(self, uow: AbstractUnitOfWork, generator: ContentGenerator):
        self.uow = uow
        self.generator = generator

    async def _start(self, topic: Topic) -> Issue:
        issue = await self.uow.issues.find_by_topic_id(topic.id)
        if issue is None:
            issue = await self.uow.issues.create({
                "topic_id": topic.id,
                "title": topic.title,
                "status": IssueStatus.GENERATING.value,
            })
        elif issue.status == IssueStatus.FAILED.value:
            validate_status_transition(issue.status, IssueStatus.GENERATING)
            issue = await self.uow.issues.update_status(issue.id, IssueStatus.GENERATING, error_message=None)
        else:
            raise PreconditionFailedError(
                f"Topic {topic.id} already has issue {issue.id} with status: {issue.status}"
            )
        await self.uow.commit()
        return issue

    async def generate_for_topic(self, topic_id: int) -> Issue:
        """
        Generate (or regenerate after a failure) the issue for a topic.

        The generator's exception is re-raised after the issue is marked failed.
        """
        topic = await self.uow.topics.get_by_id(topic_id)
        if topic is None:
            raise NotFoundError(f"Topic {topic_id} not found")

        issue = await self._start(topic)
        issue_id = issue.id

        with logfire.span("issue.generate", topic_id=topic_id, issue_id=issue_id):
            try:
                generated = await self.generator.generate(topic)
            except Exception as e:
                logger.error(f"Content generation failed for topic {topic_id}: {e}")
                validate_status_transition(IssueStatus.GENERATING, IssueStatus.FAILED)
                await self.uow.issues.update_status(issue_id, IssueStatus.FAILED, error_message=str(e))
                await self.uow.commit()
                raise

        validate_status_transition(IssueStatus.GENERATING, IssueStatus.DRAFT)
        issue = await self.uow.issues.update_status(
            issue_id,
            IssueStatus.DRAFT,
            title=generated.title or topic.title,
            content=generated.content,
            html_content=generated.html,
            text_content=generated.text,
            error_message=None,
        )
        await self.uow.commit()
        logger.info(f"Issue {issue_id} generated for topic {topic_id}")
        return issue
