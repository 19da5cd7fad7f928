"""
Built-in placeholder content.

Served when USE_LLM is off (provenance "mock") and as the degraded fallback
when the model call fails (provenance "mock-fallback").
"""
from __future__ import annotations

from typing import Any, Dict, List


MOCK_SUMMARY: Dict[str, str] = {
    "activity": "「よりみちベース」— 子どもの放課後の居場所",
    "location": "福井県越前市",
    "schedule": "週2回、公民館で開催",
    "participants": "来ている子は5〜8人",
    "operator": "ほぼ1人で運営",
    "started": "2024年開始、2年目",
    "funding": "今年度は市の単年度支援で収支はトントン",
}


MOCK_PROFILE = """## よりみちベースについて

### 私たちがやっていること

○○市の公民館で、週2回、子どもたちの放課後の居場所を開いています。学校帰りにふらっと立ち寄れる、もうひとつの「ただいま」がある場所です。

宿題をする子もいれば、マンガを読む子もいる。毎回5〜8人の子どもたちが、自分のペースで過ごしています。

### なぜこの活動が必要なのか

保護者からは「学童に入れなかった」「高学年の受け皿がない」という声がありました。子どもからは「ここに来ると安心する」という言葉が出ました。

### これまでの歩み

- **2024年：** 代表が個人で活動開始。週1回からスタート
- **2024年後半：** 市の単年度補助を取得。週2回に拡大
- **現在：** 年間延べ約400名が利用する見込み。持続可能性が課題に

### いま直面していること

**1. 来年度の資金が未確定**
今年度は市の単年度支援で収支トントン。来年度の継続は未定です。

**2. 運営体制が一人**
代表がほぼ一人で回しています。

### 応援してくださる方へ

- 月1,000円〜の継続寄付：おやつ代1回分から
- 見守りボランティア：月1回、2時間から
- SNSでシェア：知ってもらうだけで、巻き込める人が増えます

---

*※ この文章はAIが生成した提案のたたき台です。実際の活動内容に合わせて編集してお使いください。*"""


MOCK_PLAN = """## あなたの90日プラン

最初の90日で「活動がきちんと続く仕組み」をつくります。

📌 **まず今日やること：** 下の「今月」のリストを読んで、一番上のタスクだけ取りかかってください。

---

### 🟢 今月やること（Week 1〜4）

- **活動実績を1枚にまとめる** — A4一枚の実績シートを作成
- **子どもや保護者の声を2〜3人分メモする** — 匿名でOK
- **市の担当課に電話して面談の日取りを決める** — 早いほど有利です

---

### 🟡 来月やること（Week 5〜8）

- **地元企業数社にメールを送る** — [文章パックタブ]の企業メールをそのままコピペ
- **寄付受付ページをつくる** — ネット寄付サービスで30分あれば作れます

---

### 🔵 再来月やること（Week 9〜13）

- **手伝ってくれる人を2人みつける** — 保護者や地域の人に「月1回でいいので」と声をかける
- **来年度の予算案をつくる** — [資金計画タブ]の数字をベースに

---

*※ この計画はAIが生成した提案のたたき台です。実際のペースに合わせて調整してください。*"""


MOCK_FUNDING = """## お金のはなし

いま行政の支援1本だけに頼っている状態は、一番リスクが高いです。
**「もう1本」増やすだけで、1つが途切れても活動は止まりません。**

---

### 3つの柱でお金をつくる方針

**① 行政支援の継続**

来年度も支援を受けるため、面談＋実績報告を行います。過去の実績があるので、継続は十分に可能です。

**② 地元企業からの協賛**

少額協賛を数社から。社内報や会社HPでの紹介がお返しになります。

**③ 個人からの継続寄付**

少額寄付をSNSで募ります。ジュース1本分から。

---

### この1年の流れ

1. **今すぐ** — 行政に面談を申し込む
2. **1〜2か月後** — 企業数社にメールを送る
3. **3か月後** — 寄付ページを公開、SNSで告知

---

*※ この計画はAIが生成した提案のたたき台です。金額は仮置きです。*"""


MOCK_MESSAGES = """## 文章パック（関係者別）

各メッセージはそのまま**コピペして送信**できます。送信前に⚠️の部分だけ確認してください。

---

### 📄 自治体向け：継続提案メール

> **件名：「よりみちベース」次年度継続支援のご相談（ご面談のお願い）**
>
> いつもお世話になっております。
> 来年度の継続に向けて、活動実績と今後の計画をまとめましたので、
> **15〜20分ほどお時間をいただき、ご報告かたがたご相談できれば**と存じます。
>
> ⚠️ ご都合のよい日時の候補をいくつかいただけますと幸いです。

---

### 🏢 企業向け：協賛依頼メール

> **件名：子どもの居場所づくりへのご協賛のお願い（月3,000円〜）**
>
> 越前市で子どもの放課後の居場所「よりみちベース」を運営しております。
>
> **ご協賛のメリット：**
> - 月額3,000円〜と少額のため社内でも決めやすい
> - 社内報や会社HPで「地域の子ども支援」として紹介可能
>
> ⚠️ 今年度中にご返信いただけますと、来年度からの掲載・報告に反映できます。

---

### 📱 地域向け：寄付・協力募集（SNS投稿案）

> 🏠 越前市で「よりみちベース」という
> 子どもの放課後の居場所を運営しています。
>
> ✅ 月500円〜の継続寄付（ジュース1本分）
> ✅ ボランティア（月1回・2時間〜OK）
>
> ⚠️ [ここに寄付ページのURLを入れる]"""


MOCK_OUTPUTS: Dict[str, str] = {
    "profile": MOCK_PROFILE,
    "plan": MOCK_PLAN,
    "funding": MOCK_FUNDING,
    "messages": MOCK_MESSAGES,
}

PROFILE_RETRY_NOTICE = "（活動紹介の生成に失敗しました。再度お試しください）"


MOCK_EXPERT_REVIEW: Dict[str, List[Dict[str, Any]]] = {
    "reviews": [
        {
            "persona": "市の担当者",
            "avatar": "👩‍💼",
            "role": "行政予算の視点",
            "roleColor": "#5BA4A4",
            "comments": [
                "実績の数字にもう少し具体性がほしい（延べ人数・前年度比など）",
                "予算額の根拠を示すと社内で決定しやすい",
            ],
        },
        {
            "persona": "地元企業の社長",
            "avatar": "🏢",
            "role": "企業経営の視点",
            "roleColor": "#D4A853",
            "comments": [
                "社内報・HP掲載のメリットをもう少し具体的に（掲載事例など）",
                "月額より年額表示の方が社内検討しやすい",
            ],
        },
        {
            "persona": "地域の協力者",
            "avatar": "🙋",
            "role": "手伝う側の視点",
            "roleColor": "#7B9E6B",
            "comments": [
                "「月1回でいい」と書いてあると参加のハードルが下がって助かる",
                "具体的に何をするかがもう少しわかるといいかも（見守り？遊び相手？）",
            ],
        },
    ],
    "suggestions": [
        {
            "id": "s1",
            "tab": "profile",
            "reviewerIndex": 0,
            "reason": "実績の具体性向上",
            "before": "年間延べ約400名が利用する見込み",
            "after": "年間延べ432名が利用（出席簿ベース）。前年度比120%の増加",
        },
        {
            "id": "s2",
            "tab": "plan",
            "reviewerIndex": 0,
            "reason": "時限の明確化",
            "before": "市の担当課に電話して面談の日取りを決める",
            "after": "市の担当課に電話して面談の日取りを決める（今週中に。3月の予算編成に間に合わせるため）",
        },
        {
            "id": "s3",
            "tab": "funding",
            "reviewerIndex": 1,
            "reason": "予算根拠の追加",
            "before": "来年度も支援を受けるため、面談＋実績報告を行います",
            "after": "来年度も支援を受けるため、面談＋実績報告を行います。申請書類の提出期限は例年1月末です",
        },
        {
            "id": "s4",
            "tab": "messages",
            "reviewerIndex": 1,
            "reason": "企業メリットの具体化",
            "before": "社内報や会社HPで「地域の子ども支援」として紹介可能",
            "after": "社内報に掲載可能（実績：年間432名の子どもを支援）。会社HPの「地域貢献」特集にも素材をお渡しします",
        },
        {
            "id": "s5",
            "tab": "plan",
            "reviewerIndex": 2,
            "reason": "ボランティアの役割明確化",
            "before": "手伝ってくれる人を2人みつける",
            "after": "手伝ってくれる人を2人みつける（見守り・宿題サポートなど、できることからでOK）",
        },
    ],
}


MOCK_AUDIT: Dict[str, Dict[str, Dict[str, str]]] = {
    "profile": {
        "scores": {"action": "◎", "motivation": "◎", "barrier": "○", "urgency": "◎"},
        "comments": {
            "action": "「まず印刷」の指示が明確",
            "motivation": "活動の存在意義が見える化されている",
            "barrier": "印刷環境がない場合の代替が未記載",
            "urgency": "期限付きで行動を促している",
        },
    },
    "plan": {
        "scores": {"action": "◎", "motivation": "○", "barrier": "◎", "urgency": "△"},
        "comments": {
            "action": "「まず今日やること」が冒頭にある",
            "motivation": "KPIはあるが、達成後のイメージが薄い",
            "barrier": "テンプレ参照で手間を最小化している",
            "urgency": "「Week 1-2」は曖昧。具体的な日付が望ましい",
        },
    },
    "funding": {
        "scores": {"action": "◎", "motivation": "◎", "barrier": "○", "urgency": "△"},
        "comments": {
            "action": "Baseシナリオが明確",
            "motivation": "リスク可視化で危機感を持たせている",
            "barrier": "具体的な申請先URLがあるとさらに良い",
            "urgency": "「月1-2」は曖昧。「今月中に電話」の方が動ける",
        },
    },
    "messages": {
        "scores": {"action": "◎", "motivation": "◎", "barrier": "◎", "urgency": "○"},
        "comments": {
            "action": "コピペで送信できる",
            "motivation": "「効く理由」解説で自信が持てる",
            "barrier": "添付テンプレへのリンクで障壁排除",
            "urgency": "「今年度中」はあるが、季節感がもう少し欲しい",
        },
    },
}


AXIS_LABELS = {
    "action": "次のアクション明確度",
    "motivation": "動機づけ（Why）",
    "barrier": "障壁排除",
    "urgency": "緊急度・時限",
}

AXIS_IMPROVE_INSTRUCTIONS = {
    "action": "読んだ直後に何をすべきかを、冒頭に「📌まず今日やること」として1つだけ明示してください",
    "motivation": "なぜ今これをやる価値があるのか、読み手にとっての具体的なメリットを追加してください",
    "barrier": "すぐ実行するための障壁（不明点・手間）を特定し、解消する情報（URL・連絡先・手順）を追加してください",
    "urgency": "「いつまでに」を具体的な日付や時期で明記し、なぜ今やるべきかの理由を追加してください",
}


def mock_chat_reply(message: str) -> str:
    replies = [
        (
            f"いい質問ですね！\n\n「{message}」について、いくつかポイントをお伝えします：\n\n"
            "1. **助成金情報の探し方** — 民間助成金の検索サイトや自治体HPの「補助金・助成金」ページが定番です\n"
            "2. **似た事例** — 子ども食堂・居場所づくりのネットワークに類似事例が多数あります\n"
            "3. **専門家への相談** — 地域のNPOセンターや社会福祉協議会で無料相談ができます\n\n"
            "他にも気になることがあれば聞いてください 💬"
        ),
        (
            f"なるほど、「{message}」ですね。\n\n地方で活動される方によくある悩みです。\n\n"
            "おすすめのアクション：\n"
            "- **まずは地域のNPO支援センター**に相談（無料）\n"
            "- **自治体の市民活動支援課**に問い合わせ\n\n"
            "具体的に深掘りしたい点があれば教えてください！"
        ),
    ]
    return replies[len(message) % len(replies)]
