"""
SMS diagnostics routes
Check gateway configuration and send a test message
"""

from fastapi import APIRouter, Depends

from ..exceptions import OtpError
from ..schemas.otp import SMSTestRequest
from ..services.otp_manager import OtpManager
from .otp import get_otp_manager, otp_http_error
from ..utils.security import verify_admin_api_key

router = APIRouter(
    prefix="/sms",
    tags=["SMS"],
    dependencies=[Depends(verify_admin_api_key)]
)


@router.get("/config")
async def sms_config(manager: OtpManager = Depends(get_otp_manager)):
    """Report whether the SMS gateway is configured"""
    return await manager.check_gateway()


@router.post("/test")
async def sms_test(data: SMSTestRequest, manager: OtpManager = Depends(get_otp_manager)):
    """Send a test SMS"""
    try:
        receipt = await manager.send_test_message(data.phone)
    except OtpError as e:
        raise otp_http_error(e)

    return {
        "success": True,
        "message": f"Test SMS sent successfully to {receipt.to_number}",
        "status": receipt.status,
        "message_id": receipt.message_id
    }
