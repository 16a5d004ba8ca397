# wellgroups/services/errors.py
# Доменные ошибки групп и чата.
#
# Сервисный слой по-прежнему бросает ValueError с кодом (str(e) == code),
# роутеры и обработчик в main.py превращают их в {"detail": {"code", "message"}}.

from __future__ import annotations

from typing import Any, Dict, Optional


class GroupError(ValueError):
    code = "group_error"
    status_code = 400
    message = "Ошибка операции с группой"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.code)

    def to_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.extra:
            detail.update(self.extra)
        return detail


class NotEligible(GroupError):
    code = "not_eligible"
    status_code = 403
    message = "Для создания группы нужны 7 активных дней и 8 пройденных модулей"


class NotFound(GroupError):
    code = "not_found"
    status_code = 404
    message = "Не найдено"


class GroupFull(GroupError):
    code = "group_full"
    status_code = 409
    message = "В группе нет свободных мест"


class AlreadyMember(GroupError):
    code = "already_member"
    status_code = 409
    message = "Пользователь уже в группе"


class NotAMember(GroupError):
    code = "not_a_member"
    status_code = 404
    message = "Пользователь не является участником группы"


class CannotRemoveSponsor(GroupError):
    code = "cannot_remove_sponsor"
    status_code = 409
    message = "Нельзя удалить спонсора группы"


class CannotLeaveAsSponsor(GroupError):
    code = "cannot_leave_as_sponsor"
    status_code = 409
    message = "Спонсор не может выйти: передайте спонсорство или удалите группу"


class Forbidden(GroupError):
    code = "forbidden"
    status_code = 403
    message = "Недостаточно прав"


class NotAuthor(GroupError):
    code = "not_author"
    status_code = 403
    message = "Редактировать сообщение может только автор"


class WrongType(GroupError):
    code = "wrong_type"
    status_code = 409
    message = "Редактировать можно только текстовые сообщения"


class InvalidReply(GroupError):
    code = "invalid_reply"
    status_code = 422
    message = "Ответ возможен только на сообщение этой же группы"


class InvalidContent(GroupError):
    code = "invalid_content"
    status_code = 422
    message = "Недопустимый текст сообщения"


class InvalidInput(GroupError):
    code = "invalid_input"
    status_code = 422
    message = "Некорректные данные"


class InvalidTarget(GroupError):
    code = "invalid_target"
    status_code = 409
    message = "Недопустимый получатель спонсорства"


class GroupArchived(GroupError):
    code = "group_archived"
    status_code = 409
    message = "Группа архивирована"


class Unavailable(GroupError):
    code = "unavailable"
    status_code = 503
    message = "Хранилище временно недоступно, повторите позже"
