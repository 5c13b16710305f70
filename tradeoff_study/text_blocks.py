"""Participant-facing page text. Kept apart from the timeline so wording can change freely."""

DEVICE_GATE_HTML = """
<h2>裝置檢查</h2>
<p class="small">本研究需要使用電腦與鍵盤作答（為了反應時間測量）。</p>
<p class="small">請改用電腦重新開啟連結。</p>
""".strip()

DEVICE_GATE_CHOICES = ["我知道了"]

CONSENT_HTML = """
<h2>研究同意書</h2>
<div class="small">
  <p>你將完成一個關於「需要取捨的選擇」之研究。全程約 15–25 分鐘。</p>
  <ul class="tight">
    <li>你可以隨時停止參與，不會有任何不利影響。</li>
    <li>研究蒐集你的作答與反應時間（毫秒），不蒐集可直接識別的個資。</li>
    <li>若你感到不適，可立即退出。</li>
  </ul>
  <p class="muted">聯絡方式：請填入你的研究室/IRB資訊。</p>
</div>
""".strip()

CONSENT_DECLINED_TEXT = "你已選擇不同意參與。"
DEVICE_BLOCKED_TEXT = "本研究不支援行動裝置。"

DEMOGRAPHICS_HTML = """
<h3>基本資料（非必填）</h3><p class="small muted">若不想填可留空。</p>
""".strip()

VCP_HTML = """
<h3>量表：價值衝突傾向</h3>
<p class="small">以下題目描述你在做選擇時的感受。請以 1–7 分作答：1=非常不同意，7=非常同意。請依你「通常」的情況回答。</p>
""".strip()

TASK_INSTRUCTIONS_HTML = """
<h3>決策任務說明</h3>
<div class="small">
  <p>接下來你會看到一系列「打工方案」情境，每題有兩個方案（A/B）。</p>
  <ul class="tight">
    <li>請想像你下學期真的要在兩個方案中選一個。</li>
    <li>看到題目後，請選擇：<span class="kbd">F</span> = 選 A；<span class="kbd">J</span> = 選 B</li>
    <li>請盡量在 <b>20 秒內</b>做出選擇。</li>
    <li>每題選完後會問你「確定程度」與「想換的程度」。</li>
  </ul>
  <p class="muted">按下「開始」進入任務。</p>
</div>
""".strip()

START_CHOICES = ["開始"]

POST_DECISION_SURE = "你對剛才的選擇有多確定？"
POST_DECISION_SWITCH = "如果可以立刻改選，你有多想改？"

FATIGUE_HTML = """
<h3>任務後感受</h3><p class="small muted">請依你此刻狀態作答（1–7）。</p>
""".strip()

PERSIST_INSTRUCTIONS_HTML = """
<h3>最後一個小任務：字母重組</h3>
<div class="small">
  <p>你會看到一些英文字母，請你嘗試重組成一個英文單字。</p>
  <ul class="tight">
    <li>每題你可以輸入答案，或按「放棄此題」跳下一題。</li>
    <li>請盡力嘗試，但若你覺得想放棄也可以。</li>
  </ul>
  <p class="muted">按「開始」進入任務。</p>
</div>
""".strip()

ANAGRAM_PROMPT = "你的答案："
GIVE_UP_LABEL = "放棄此題"

PRE_FINISH_HTML = """
<h3>資料處理中…</h3><p class="small muted">請按「下一頁」完成。</p>
""".strip()

NEXT_CHOICES = ["下一頁"]

DELIVERED_MESSAGE = "✅ 已送出資料（同時也已下載一份到你的電腦作備份）。"
UNCERTAIN_MESSAGE = "⚠️ 送出資料失敗（但已下載備份檔）。請通知研究人員並提供下載的檔案。"
BACKUP_FAILED_MESSAGE = "❌ 無法產生備份檔。請勿關閉此頁面，並立即通知研究人員。"
