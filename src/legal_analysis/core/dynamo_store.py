"""
DynamoDB / S3 Analysis Store
Document rows and analysis artifacts in DynamoDB, raw uploads in S3
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, Optional
import boto3
from botocore.exceptions import ClientError

from ..pipeline.config import PipelineConfig
from ..pipeline.models import (
    AnalysisArtifact,
    AnalysisStatus,
    DocumentMetadata,
    DocumentStatusRecord,
    Report,
)
from .analysis_store import AnalysisStore

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


class DynamoAnalysisStore(AnalysisStore):
    """
    Analysis store on AWS

    Structured artifact fields are stored as JSON strings; readers get them
    back as strings and normalize them.
    """

    def __init__(self, documents_table, analysis_table, s3_client, bucket: str):
        self.documents_table = documents_table
        self.analysis_table = analysis_table
        self.s3 = s3_client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "DynamoAnalysisStore":
        dynamodb = boto3.resource('dynamodb', region_name=config.bedrock_region)
        return cls(
            documents_table=dynamodb.Table(config.documents_table),
            analysis_table=dynamodb.Table(config.analysis_table),
            s3_client=boto3.client('s3', region_name=config.bedrock_region),
            bucket=config.documents_bucket
        )

    async def get_document_metadata(self, document_id: str) -> Optional[DocumentMetadata]:
        item = await self._get_document_item(document_id)
        if item is None:
            return None
        return DocumentMetadata(
            document_id=document_id,
            filename=item.get('filename', ''),
            mime_type=item.get('mime_type', 'application/octet-stream'),
            created_at=_parse_timestamp(item.get('created_at'))
        )

    async def get_raw_bytes(self, document_id: str) -> Optional[bytes]:
        item = await self._get_document_item(document_id)
        if item is None:
            logger.warning(f"Document not found in table: {document_id}")
            return None

        key = item.get('raw_key')
        if not key:
            logger.error(f"Document {document_id} has no stored file key")
            return None

        try:
            response = await asyncio.to_thread(self.s3.get_object, Bucket=self.bucket, Key=key)
            raw = await asyncio.to_thread(response['Body'].read)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in MISSING_OBJECT_CODES:
                logger.error(f"File does not exist in s3://{self.bucket}/{key} (document {document_id})")
                return None
            raise

        if not raw:
            logger.error(f"Empty file: s3://{self.bucket}/{key}")
            return None
        return raw

    async def get_artifact(self, document_id: str) -> Optional[AnalysisArtifact]:
        response = await asyncio.to_thread(self.analysis_table.get_item, Key={'document_id': document_id})
        item = response.get('Item')
        if not item:
            return None

        document_type = item.get('type')
        return AnalysisArtifact(
            document_id=document_id,
            type=document_type,
            original=item.get('original'),
            translated=item.get('translated'),
            checklist=item.get('checklist'),
            report=Report.from_value(item.get('report'), document_type or "other"),
            user_instructions=item.get('user_instructions'),
            created_at=_parse_timestamp(item.get('created_at'))
        )

    async def upsert_artifact(self, artifact: AnalysisArtifact) -> None:
        payload = artifact.to_dict()
        item = {
            'document_id': artifact.document_id,
            'type': payload['type'],
            'original': _dump(payload['original']),
            'translated': _dump(payload['translated']),
            'checklist': _dump(payload['checklist']),
            'report': _dump(payload['report']),
            'user_instructions': payload['user_instructions'],
            'created_at': payload['created_at'],
        }
        # DynamoDB rejects empty attribute values on some types, drop the Nones
        item = {key: value for key, value in item.items() if value is not None}

        await asyncio.to_thread(self.analysis_table.put_item, Item=item)
        logger.info(f"Saved analysis for {artifact.document_id}, type: {artifact.type}")

    async def delete_artifact(self, document_id: str) -> None:
        await asyncio.to_thread(self.analysis_table.delete_item, Key={'document_id': document_id})

    async def set_status(self, document_id: str, status: AnalysisStatus, progress: int) -> None:
        await asyncio.to_thread(
            self.documents_table.update_item,
            Key={'document_id': document_id},
            UpdateExpression="SET #status = :status, progress = :progress, updated_at = :now REMOVE error_message",
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':status': status.value,
                ':progress': progress,
                ':now': datetime.now().isoformat()
            }
        )

    async def set_error(self, document_id: str, message: str) -> None:
        await asyncio.to_thread(
            self.documents_table.update_item,
            Key={'document_id': document_id},
            UpdateExpression="SET #status = :status, progress = :progress, error_message = :message, updated_at = :now",
            ExpressionAttributeNames={'#status': 'status'},
            ExpressionAttributeValues={
                ':status': AnalysisStatus.ERROR.value,
                ':progress': 0,
                ':message': message,
                ':now': datetime.now().isoformat()
            }
        )

    async def get_status(self, document_id: str) -> Optional[DocumentStatusRecord]:
        item = await self._get_document_item(document_id)
        if item is None:
            return None
        return DocumentStatusRecord(
            document_id=document_id,
            status=AnalysisStatus(item.get('status', AnalysisStatus.UPLOADED.value)),
            progress=int(item.get('progress', 0)),
            error_message=item.get('error_message'),
            updated_at=_parse_timestamp(item.get('updated_at'))
        )

    async def _get_document_item(self, document_id: str) -> Optional[Dict]:
        response = await asyncio.to_thread(self.documents_table.get_item, Key={'document_id': document_id})
        return response.get('Item')


def _dump(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _parse_timestamp(value) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return datetime.now()
