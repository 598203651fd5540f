from pydantic import BaseModel


class VariantAssignment(BaseModel):
    test_name: str
    user_id: str
    variant: str
