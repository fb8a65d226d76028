from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..db import get_session
from ..core.current_user import get_current_user
from ..models.user import User
from ..services.attachment_service import AttachmentService
from .attachments import assert_ticket_access, get_attachment_service, get_ticket_or_404

router = APIRouter(tags=["tickets"])


@router.delete("/tickets/{ticket_id}", status_code=204)
def delete_ticket(
    ticket_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    service: AttachmentService = Depends(get_attachment_service),
):
    ticket = get_ticket_or_404(session, ticket_id)
    assert_ticket_access(user, ticket)

    # 첨부(티켓 + 댓글 첨부) 오브젝트/메타데이터를 먼저 정리한 뒤 티켓 삭제
    service.delete_all_for_ticket(ticket_id)

    session.delete(ticket)
    session.commit()
    return Response(status_code=204)
