from genbatch.cli.enums import OrderByFields, StatusFilter


def complete_order_by(value: str):
    for field in OrderByFields.__members__.values():
        if field.startswith(value):
            yield field


def complete_status(value: str):
    for status in StatusFilter.__members__.values():
        if status.startswith(value):
            yield status
