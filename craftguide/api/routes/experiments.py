from fastapi import APIRouter, Depends

from craftguide.core.auth import get_current_user_id
from craftguide.schemas.experiments import VariantAssignment
from craftguide.services.experiments import ab_test_variant

router = APIRouter(prefix="/experiments", tags=["experiments"])


@router.get("/{test_name}/variant", response_model=VariantAssignment)
def get_variant(test_name: str, user_id: str = Depends(get_current_user_id)):
    return VariantAssignment(
        test_name=test_name,
        user_id=user_id,
        variant=ab_test_variant(user_id, test_name),
    )
