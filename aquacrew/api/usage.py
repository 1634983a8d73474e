from fastapi import APIRouter, Depends

from aquacrew.api.deps import get_container
from aquacrew.core.container import AppContainer

router = APIRouter(prefix="/v1/usage", tags=["usage"])


@router.get("/report")
def usage_report(container: AppContainer = Depends(get_container)):
    container.guard.refresh()
    return container.guard.report().model_dump(mode="json")
