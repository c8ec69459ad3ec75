"""
Static vocabulary tables for the semantic normalizer.

The canonical schema is English snake_case. Analyzers (and legacy callers) may
emit Chinese labels, simplified-script variants or older key names; these
tables map them onto the canonical vocabulary.
"""
from typing import Any, Dict, List

# Canonical intent vocabulary
CANONICAL_INTENTS = [
    "record_course",
    "create_recurring_course",
    "modify_course",
    "modify_recurring_course",
    "cancel_course",
    "stop_recurring_course",
    "query_schedule",
    "clear_schedule",
    "query_today_courses_for_content",
    "set_reminder",
    "record_lesson_content",
    "record_homework",
    "upload_class_photo",
    "query_course_content",
    "modify_course_content",
    "correction_intent",
    "confirm_action",
    "cancel_action",
    "unknown",
]

# Direct labels, loaded into the precomputed table at startup
INTENT_LABELS: Dict[str, str] = {
    # course management
    "記錄課程": "record_course",
    "新增課程": "record_course",
    "安排課程": "record_course",
    "預約課程": "record_course",
    "重複課程": "create_recurring_course",
    "新增重複課程": "create_recurring_course",
    "固定課程": "create_recurring_course",
    "修改課程": "modify_course",
    "更改課程": "modify_course",
    "調整課程": "modify_course",
    "修改重複課程": "modify_recurring_course",
    "取消課程": "cancel_course",
    "刪除課程": "cancel_course",
    "停止重複課程": "stop_recurring_course",
    "停止課程": "stop_recurring_course",
    # schedule
    "查詢課表": "query_schedule",
    "查詢課程": "query_schedule",
    "查看課表": "query_schedule",
    "清空課表": "clear_schedule",
    "清除課表": "clear_schedule",
    "查詢今日課程": "query_today_courses_for_content",
    # reminders
    "設定提醒": "set_reminder",
    "提醒": "set_reminder",
    # lesson content
    "記錄內容": "record_lesson_content",
    "記錄課程內容": "record_lesson_content",
    "記錄作業": "record_homework",
    "上傳照片": "upload_class_photo",
    "上傳課堂照片": "upload_class_photo",
    "查詢課程內容": "query_course_content",
    "修改課程內容": "modify_course_content",
    # dialogue control
    "修正": "correction_intent",
    "更正": "correction_intent",
    "確認": "confirm_action",
    "取消操作": "cancel_action",
    "未知": "unknown",
}

# Legacy key names and script variants, resolved through the lookup cache
INTENT_ALIASES: Dict[str, str] = {
    "record": "record_course",
    "add_course": "record_course",
    "create_course": "record_course",
    "new_course": "record_course",
    "recurring_course": "create_recurring_course",
    "add_recurring_course": "create_recurring_course",
    "update_course": "modify_course",
    "edit_course": "modify_course",
    "change_course": "modify_course",
    "delete_course": "cancel_course",
    "remove_course": "cancel_course",
    "stop_recurring": "stop_recurring_course",
    "query": "query_schedule",
    "check_schedule": "query_schedule",
    "get_schedule": "query_schedule",
    "clear_all": "clear_schedule",
    "reminder": "set_reminder",
    "add_reminder": "set_reminder",
    "record_content": "record_lesson_content",
    "lesson_content": "record_lesson_content",
    "homework": "record_homework",
    "upload_photo": "upload_class_photo",
    "query_content": "query_course_content",
    "correction": "correction_intent",
    "confirm": "confirm_action",
    "abort": "cancel_action",
    # simplified script
    "记录课程": "record_course",
    "新增课程": "record_course",
    "修改课程": "modify_course",
    "取消课程": "cancel_course",
    "删除课程": "cancel_course",
    "查询课表": "query_schedule",
    "查询课程": "query_schedule",
    "清空课表": "clear_schedule",
    "设定提醒": "set_reminder",
    "记录内容": "record_lesson_content",
    "记录作业": "record_homework",
    "上传照片": "upload_class_photo",
    "查询课程内容": "query_course_content",
}

# Weighted keywords for approximate intent matching
KEYWORD_WEIGHTS: Dict[str, Dict[str, Any]] = {
    "記錄": {"intent": "record_course", "weight": 0.9},
    "新增": {"intent": "record_course", "weight": 0.8},
    "添加": {"intent": "record_course", "weight": 0.8},
    "安排": {"intent": "record_course", "weight": 0.7},
    "預約": {"intent": "record_course", "weight": 0.7},
    "查詢": {"intent": "query_schedule", "weight": 0.9},
    "查看": {"intent": "query_schedule", "weight": 0.8},
    "課表": {"intent": "query_schedule", "weight": 0.6},
    "怎麼樣": {"intent": "query_course_content", "weight": 0.8},
    "修改": {"intent": "modify_course", "weight": 0.9},
    "更改": {"intent": "modify_course", "weight": 0.8},
    "調整": {"intent": "modify_course", "weight": 0.8},
    "變更": {"intent": "modify_course", "weight": 0.7},
    "取消": {"intent": "cancel_course", "weight": 0.9},
    "刪除": {"intent": "cancel_course", "weight": 0.8},
    "移除": {"intent": "cancel_course", "weight": 0.7},
    "清空": {"intent": "clear_schedule", "weight": 0.9},
    "清除": {"intent": "clear_schedule", "weight": 0.8},
    "提醒": {"intent": "set_reminder", "weight": 0.9},
    "作業": {"intent": "record_homework", "weight": 0.8},
    "照片": {"intent": "upload_class_photo", "weight": 0.8},
}

# Semantic clusters; the first intent of a cluster is its representative
SEMANTIC_CLUSTERS: Dict[str, Dict[str, List[str]]] = {
    "course_management": {
        "patterns": ["課程", "課堂", "上課", "學習", "教學"],
        "intents": ["record_course", "modify_course", "query_course_content"],
    },
    "schedule_operations": {
        "patterns": ["時間", "排程", "行程", "計劃"],
        "intents": ["query_schedule", "modify_course", "record_course"],
    },
    "content_operations": {
        "patterns": ["內容", "資料", "檔案", "筆記"],
        "intents": ["record_lesson_content", "upload_class_photo", "query_course_content"],
    },
    "administrative": {
        "patterns": ["通知", "設定", "管理"],
        "intents": ["set_reminder", "clear_schedule", "modify_course"],
    },
}

DEFAULT_FUZZY_CONFIG: Dict[str, Any] = {
    "intent_similarity_threshold": 0.6,
    "entity_similarity_threshold": 0.7,
    "keyword_match_threshold": 0.5,
    "cluster_confidence": 0.65,
    "enable_keyword_matching": True,
    "enable_semantic_clustering": True,
}

# Entity keys
ENTITY_KEY_MAPPINGS: Dict[str, str] = {
    "課程名稱": "course_name",
    "課程": "course_name",
    "科目": "course_name",
    "course": "course_name",
    "courseName": "course_name",
    "subject": "course_name",
    "學生": "student_name",
    "學生姓名": "student_name",
    "孩子": "student_name",
    "student": "student_name",
    "studentName": "student_name",
    "child_name": "student_name",
    "日期": "date_phrase",
    "date": "date_phrase",
    "時間": "time_phrase",
    "time": "time_phrase",
    "timeReference": "time_phrase",
    "地點": "location",
    "place": "location",
    "老師": "teacher",
    "表現": "performance",
    "年級": "grade",
    "心情": "mood",
    "確認": "confirmation",
    "confirm": "confirmation",
    "狀態": "status",
    "內容": "content",
    "作業": "homework",
    "提醒時間": "reminder_time",
    "重複": "recurrence",
    "recurring": "recurrence",
}

CONFIRMATION_VALUES: Dict[str, bool] = {
    "是": True,
    "對": True,
    "好": True,
    "確認": True,
    "同意": True,
    "沒錯": True,
    "正確": True,
    "對的": True,
    "當然": True,
    "可以": True,
    "行": True,
    "好的": True,
    "沒問題": True,
    "yes": True,
    "ok": True,
    "okay": True,
    "👍": True,
    "✅": True,
    "不是": False,
    "否": False,
    "不": False,
    "不同意": False,
    "不對": False,
    "錯": False,
    "不可以": False,
    "不行": False,
    "no": False,
    "👎": False,
    "❌": False,
}

PERFORMANCE_VALUES: Dict[str, str] = {
    "很好": "excellent",
    "非常好": "excellent",
    "棒": "excellent",
    "優秀": "excellent",
    "完美": "excellent",
    "超棒": "excellent",
    "厲害": "excellent",
    "讚": "excellent",
    "💯": "excellent",
    "好": "good",
    "不錯": "good",
    "還可以": "good",
    "還行": "good",
    "普通": "average",
    "一般": "average",
    "中等": "average",
    "差": "poor",
    "不好": "poor",
    "需要努力": "poor",
    "要加油": "poor",
    "進步": "improving",
    "有進步": "improving",
    "退步": "declining",
}

GRADE_VALUES: Dict[str, str] = {
    "小一": "grade_1",
    "小二": "grade_2",
    "小三": "grade_3",
    "小四": "grade_4",
    "小五": "grade_5",
    "小六": "grade_6",
    "一年級": "grade_1",
    "二年級": "grade_2",
    "三年級": "grade_3",
    "四年級": "grade_4",
    "五年級": "grade_5",
    "六年級": "grade_6",
    "國一": "grade_7",
    "國二": "grade_8",
    "國三": "grade_9",
    "高一": "grade_10",
    "高二": "grade_11",
    "高三": "grade_12",
}

MOOD_VALUES: Dict[str, str] = {
    "開心": "happy",
    "高興": "happy",
    "快樂": "happy",
    "😊": "happy",
    "難過": "sad",
    "傷心": "sad",
    "😢": "sad",
    "生氣": "angry",
    "累": "tired",
    "很累": "tired",
    "緊張": "nervous",
    "擔心": "worried",
    "平靜": "calm",
}

# Emoji values that carry no entity-specific meaning
GENERIC_VALUES: Dict[str, str] = {
    "👍": "positive",
    "👎": "negative",
    "❤️": "positive",
    "😊": "positive",
    "😢": "negative",
}

COMMON_COURSE_NAMES: Dict[str, str] = {
    "數學課": "數學",
    "數學班": "數學",
    "math": "數學",
    "英文課": "英文",
    "英語": "英文",
    "英語課": "英文",
    "english": "英文",
    "鋼琴課": "鋼琴",
    "piano": "鋼琴",
    "游泳課": "游泳",
    "swimming": "游泳",
    "國語": "國文",
    "國文課": "國文",
    "自然課": "自然",
    "美術課": "美術",
    "art": "美術",
    "音樂課": "音樂",
    "music": "音樂",
    "圍棋課": "圍棋",
    "书法": "書法",
    "数学": "數學",
    "钢琴": "鋼琴",
}

# Entity key -> value table; keys absent here use GENERIC_VALUES
VALUE_TABLES: Dict[str, Dict[str, Any]] = {
    "confirmation": CONFIRMATION_VALUES,
    "status": CONFIRMATION_VALUES,
    "performance": PERFORMANCE_VALUES,
    "grade": GRADE_VALUES,
    "mood": MOOD_VALUES,
}
