"""
Static rule table for the pattern analyzer.

Rules are evaluated in declaration order; when two rules produce matched spans
of the same length, the rule declared first wins. Patterns are regular
expressions matched case-insensitively against the raw message.
"""
from typing import Any, Dict, List

# Clause characters a pattern is not allowed to run across
_CLAUSE = r"[^，,。！!？?\n]"

KNOWN_SUBJECTS = [
    "數學",
    "英文",
    "英語",
    "國文",
    "語文",
    "自然",
    "科學",
    "社會",
    "物理",
    "化學",
    "音樂",
    "美術",
    "體育",
    "鋼琴",
    "小提琴",
    "游泳",
    "圍棋",
    "書法",
    "舞蹈",
    "程式",
    "珠心算",
]

DATE_PATTERNS = [
    r"(今天|明天|後天|大後天|昨天|前天)",
    r"((這|下|上)(個)?(週|周|星期|禮拜)[一二三四五六日天])",
    r"((星期|週|周|禮拜)[一二三四五六日天])",
    r"(\d{1,2}月\d{1,2}[日號])",
    r"(\d{1,2}/\d{1,2})",
    r"\b(today|tomorrow|yesterday)\b",
    r"\b((next|this) (monday|tuesday|wednesday|thursday|friday|saturday|sunday))\b",
]

TIME_PATTERNS = [
    r"((早上|上午|中午|下午|晚上)\s*\d{1,2}\s*(點|時)(半|\d{1,2}分)?)",
    r"(\d{1,2}\s*(點|時)(半|\d{1,2}分)?)",
    r"(\d{1,2}:\d{2})",
    r"\b(\d{1,2}\s*(am|pm))\b",
]

INTENT_RULES: List[Dict[str, Any]] = [
    {
        "intent": "clear_schedule",
        "patterns": [
            rf"(清空|清除|全部刪除|刪除全部|刪掉全部){_CLAUSE}{{0,6}}?(課表|課程|行程)",
            rf"(課表|課程|行程){_CLAUSE}{{0,6}}?(全部刪除|全部清除|清空|刪光)",
            r"\bclear (my |the )?(schedule|timetable)\b",
        ],
        "keywords": ["清空", "清除", "全部刪除", "課表"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["清空課表", "把課程全部刪除", "clear my schedule"],
    },
    {
        "intent": "cancel_course",
        "patterns": [
            rf"(取消|刪除|移除|不上){_CLAUSE}{{0,12}}?(課程|課)",
            r"\bcancel\b.{0,30}?\bclass(es)?\b",
        ],
        "keywords": ["取消", "刪除", "移除", "不要", "不上"],
        "ambiguous": [],
        "exclusions": ["全部刪除", "清空"],
        "examples": ["取消明天的數學課", "刪除小明的英文課", "cancel tomorrow's piano class"],
    },
    {
        "intent": "stop_recurring_course",
        "patterns": [
            rf"(停止|不再|停掉){_CLAUSE}{{0,12}}?(課程|課)",
        ],
        "keywords": ["停止", "不再", "停掉", "每週", "每天"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["停止每週三的鋼琴課", "以後不再上游泳課"],
    },
    {
        "intent": "modify_course",
        "patterns": [
            rf"(修改|更改|改成|改到|調整|變更){_CLAUSE}{{0,12}}",
            rf"把{_CLAUSE}{{1,10}}?改",
            r"\b(reschedule|move|change)\b.{0,30}?\bclass(es)?\b",
        ],
        "keywords": ["修改", "更改", "調整", "變更", "改成", "改到"],
        "ambiguous": ["改"],
        "exclusions": [],
        "examples": ["把數學課改到下午三點", "修改英文課的時間", "reschedule my math class"],
    },
    {
        "intent": "set_reminder",
        "patterns": [
            rf"(提醒我?|設定?提醒){_CLAUSE}{{0,15}}",
            r"\bremind me\b.{0,40}",
        ],
        "keywords": ["提醒", "通知", "記得"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["課前半小時提醒我", "設定提醒明天的英文課", "remind me before class"],
    },
    {
        "intent": "create_recurring_course",
        "patterns": [
            rf"(每週|每周|每天|每月|每個?星期[一二三四五六日天]|每個?禮拜[一二三四五六日天]){_CLAUSE}{{0,15}}?(課程|課)",
        ],
        "keywords": ["每週", "每周", "每天", "每月", "固定", "重複"],
        "ambiguous": [],
        "exclusions": ["停止", "不再", "取消"],
        "examples": ["小明每週三下午四點鋼琴課", "每天早上八點英文課"],
    },
    {
        "intent": "record_homework",
        "patterns": [
            rf"(作業|功課){_CLAUSE}{{0,15}}",
        ],
        "keywords": ["作業", "功課", "回家作業"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["數學作業是第三頁到第五頁", "今天英文功課要背單字"],
    },
    {
        "intent": "upload_class_photo",
        "patterns": [
            rf"(上傳|傳){_CLAUSE}{{0,6}}?(照片|相片|圖片)",
        ],
        "keywords": ["上傳", "照片", "相片", "圖片"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["上傳今天上課的照片", "傳一張課堂相片"],
    },
    {
        "intent": "query_course_content",
        "patterns": [
            rf"(上次|之前|昨天|上週|上周){_CLAUSE}{{0,10}}?(學了?什麼|上了?什麼|內容|怎麼樣|如何|表現)",
            rf"{_CLAUSE}{{0,8}}?課{_CLAUSE}{{0,4}}?(學了?什麼|上了?什麼|內容是什麼)",
        ],
        "keywords": ["內容", "學什麼", "怎麼樣", "表現", "上次"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["上次數學課學了什麼", "小明昨天的英文課表現怎麼樣"],
    },
    {
        "intent": "record_lesson_content",
        "patterns": [
            rf"(今天|剛才|剛剛)?{_CLAUSE}{{0,8}}?(學了|教了|練了|上了){_CLAUSE}{{1,20}}",
            rf"(記錄|紀錄){_CLAUSE}{{0,6}}?(內容|表現)",
        ],
        "keywords": ["學了", "教了", "練了", "內容", "表現"],
        "ambiguous": [],
        "exclusions": ["什麼", "嗎", "？", "?"],
        "examples": ["今天數學課學了分數", "記錄英文課的內容"],
    },
    {
        "intent": "query_schedule",
        "patterns": [
            rf"(查詢?|查看|看看|看一下|顯示){_CLAUSE}{{0,10}}?(課表|課程|行程|安排|課)",
            rf"(有什麼課|有哪些課|有課嗎|幾點上課)",
            r"\b(what|which) class(es)?\b.{0,30}",
            r"\bshow (me )?(my )?(schedule|classes)\b",
        ],
        "keywords": ["查", "查詢", "查看", "課表", "有什麼課", "行程"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["查詢這週的課表", "明天有什麼課", "show my schedule"],
    },
    {
        "intent": "record_course",
        "patterns": [
            rf"(記錄|紀錄|新增|添加|安排|預約){_CLAUSE}{{0,12}}?(課程|課)",
            r"\b(add|schedule|book)\b.{0,30}?\bclass(es)?\b",
        ],
        "keywords": ["記錄", "紀錄", "新增", "添加", "安排", "預約", "課程", "上課"],
        "ambiguous": ["課"],
        "exclusions": ["取消", "刪除", "查詢", "修改"],
        "examples": ["記錄課程", "新增明天下午兩點的數學課", "add a piano class tomorrow"],
    },
    {
        "intent": "confirm_action",
        "patterns": [
            r"^\s*(確認|是的?|對的?|好的?|沒問題|可以|ok|okay|yes|y)\s*[!！。.]?\s*$",
        ],
        "keywords": ["確認", "沒問題"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["確認", "好的", "ok"],
    },
    {
        "intent": "cancel_action",
        "patterns": [
            r"^\s*(算了|不要了|不用了|取消操作|先不要|no)\s*[!！。.]?\s*$",
        ],
        "keywords": ["算了", "不要了", "不用了"],
        "ambiguous": [],
        "exclusions": [],
        "examples": ["算了", "不用了"],
    },
]
