from api.schema import RunningRecord

PACE_PLACEHOLDER = "-"

def format_record_reply(record: RunningRecord) -> str:
    """Confirmation sent after a record has been stored"""
    return (
        "記録しました！\n"
        "\n"
        f"日時: {record.date}\n"
        f"距離: {record.distance}\n"
        f"時間: {record.time}\n"
        f"ペース: {record.pace or PACE_PLACEHOLDER}"
    )
