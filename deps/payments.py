from fastapi import HTTPException, Request

from app.container import PaymentServices


def get_services(request: Request) -> PaymentServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="SERVICE_NOT_READY")
    return services
