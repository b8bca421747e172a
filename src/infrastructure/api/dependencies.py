from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from src.application.use_cases.batch_upload_image import BatchUploadImageUseCase
from src.application.use_cases.delete_image import DeleteImageUseCase
from src.application.use_cases.replace_image import ReplaceImageUseCase
from src.application.use_cases.upload_image import UploadImageUseCase
from src.domain.services.decoding_service import DecodingService
from src.domain.services.transform_service import TransformConfig, TransformService
from src.domain.services.validation_service import ValidationService
from src.infrastructure.storage.supabase_storage import SupabaseStorage
from src.infrastructure.supabase_client import create_supabase_client


# One storage client per process; tests override this dependency
@lru_cache(maxsize=1)
def get_storage() -> SupabaseStorage:
    return SupabaseStorage(create_supabase_client())


@lru_cache(maxsize=1)
def get_transform_service() -> TransformService:
    return TransformService(TransformConfig.from_env())


def get_upload_use_case(
    storage: SupabaseStorage = Depends(get_storage),
    transform: TransformService = Depends(get_transform_service),
) -> UploadImageUseCase:
    return UploadImageUseCase(
        storage=storage,
        validation=ValidationService(),
        decoding=DecodingService(draft_bound=transform.config.longest_edge),
        transform=transform,
    )


def get_delete_use_case(storage: SupabaseStorage = Depends(get_storage)) -> DeleteImageUseCase:
    return DeleteImageUseCase(storage=storage)


def get_batch_upload_use_case(
    upload: UploadImageUseCase = Depends(get_upload_use_case),
) -> BatchUploadImageUseCase:
    return BatchUploadImageUseCase(upload=upload)


def get_replace_use_case(
    upload: UploadImageUseCase = Depends(get_upload_use_case),
    delete: DeleteImageUseCase = Depends(get_delete_use_case),
) -> ReplaceImageUseCase:
    return ReplaceImageUseCase(upload=upload, delete=delete)
